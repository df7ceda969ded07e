"""
Database package for synotag.

Contains the SQLAlchemy models for tags, taggings and the taggable mixin.
"""

from __future__ import annotations

from .models import Base, Tag, Tagging, Taggable

__all__ = ["Base", "Tag", "Tagging", "Taggable"]
