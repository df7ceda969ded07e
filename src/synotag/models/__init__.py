"""
Pydantic and value models for synotag.

This module provides the tag list value type, tag schemas, the taggable
reference and the validated query option models.
"""

from __future__ import annotations

from .query_options import (
    FindTaggedWithOptions,
    QueryOptions,
    TagCountOptions,
    parse_options,
)
from .tag import Tag, TagBase, TagCount, TagCreate, TagUpdate
from .tag_list import TagList, normalize_tag_name, tag_key
from .taggable import TaggableRef
from .tagging import Tagging, TaggingCreate

__all__ = [
    # Tag list
    "TagList",
    "normalize_tag_name",
    "tag_key",
    # Tags
    "TagBase",
    "TagCreate",
    "TagUpdate",
    "Tag",
    "TagCount",
    # Taggables
    "TaggableRef",
    "TaggingCreate",
    "Tagging",
    # Query options
    "QueryOptions",
    "FindTaggedWithOptions",
    "TagCountOptions",
    "parse_options",
]
