"""
Services module for synotag.

Contains the canonical link resolver and the tag query compiler.  The
synchronizer and the tagging service depend on the repositories and are
imported from their own modules.
"""

from __future__ import annotations

from synotag.services.canonical_resolver import (
    CanonicalResolver,
    canonical_group_id,
    canonical_group_ids,
    flatten_canonical_link,
    is_canonical,
)
from synotag.services.query_compiler import JoinClause, QuerySpec, TagQueryCompiler

__all__: list[str] = [
    "CanonicalResolver",
    "canonical_group_id",
    "canonical_group_ids",
    "flatten_canonical_link",
    "is_canonical",
    "JoinClause",
    "QuerySpec",
    "TagQueryCompiler",
]
