"""
Tag models.

Defines Pydantic models for creating, updating and reading tags, and for the
aggregate rows produced by tag frequency queries.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .tag_list import normalize_tag_name


class TagBase(BaseModel):
    """Base model for tag data."""

    name: str = Field(..., min_length=1, max_length=255, description="Tag name")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Normalize whitespace and reject blank names."""
        name = normalize_tag_name(v)
        if not name:
            raise ValueError("Tag name cannot be empty")
        return name

    model_config = ConfigDict(
        validate_assignment=True,
    )


class TagCreate(TagBase):
    """Model for creating tags, optionally as a synonym of another tag."""

    canonical_tag_id: Optional[uuid.UUID] = Field(
        default=None, description="Canonical tag this tag is a synonym of"
    )


class TagUpdate(BaseModel):
    """
    Model for updating tags (PATCH-style, all fields optional).

    An explicitly supplied ``canonical_tag_id=None`` promotes the tag to
    canonical; omitting the field leaves the link untouched.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    canonical_tag_id: Optional[uuid.UUID] = None

    model_config = ConfigDict(
        validate_assignment=True,
    )


class Tag(TagBase):
    """Full tag model with identifiers and timestamps."""

    id: uuid.UUID = Field(..., description="Tag UUID (UUIDv7)")
    normalized_name: str = Field(..., description="Case-folded identity key")
    canonical_tag_id: Optional[uuid.UUID] = Field(
        default=None, description="Canonical tag this tag is a synonym of"
    )
    created_at: datetime = Field(..., description="When the tag was created")

    model_config = ConfigDict(
        from_attributes=True,
        validate_assignment=True,
    )

    @property
    def is_canonical(self) -> bool:
        return self.canonical_tag_id is None


class TagCount(BaseModel):
    """
    One row of a tag frequency aggregate.

    In canonical mode the row always carries the canonical tag's identity and
    name; the count includes occurrences of all its synonyms.
    """

    id: uuid.UUID
    name: str
    count: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return self.name
