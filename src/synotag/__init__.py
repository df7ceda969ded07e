"""
synotag - Synonym-aware tagging for SQLAlchemy entities.

Lets any persisted entity carry a free-form list of tags, keeps the
tag/synonym hierarchy flat, and answers membership and frequency queries
with synonyms collapsed under their canonical tag.
"""

from __future__ import annotations

__version__ = "0.4.0"
__author__ = "synotag"
__email__ = "noreply@synotag.dev"
__license__ = "AGPL-3.0-or-later"

__all__ = ["__version__", "__author__", "__email__", "__license__"]
