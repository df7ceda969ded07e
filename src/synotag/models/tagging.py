"""
Tagging models.

Defines Pydantic models for the join records that link a taggable entity to
a tag.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .taggable import TaggableRef


class TaggingCreate(BaseModel):
    """Model for creating taggings."""

    tag_id: uuid.UUID = Field(..., description="Linked tag")
    taggable_type: str = Field(..., min_length=1, max_length=100)
    taggable_id: str = Field(..., min_length=1, max_length=64)

    @classmethod
    def for_ref(cls, ref: TaggableRef, tag_id: uuid.UUID) -> TaggingCreate:
        return cls(
            tag_id=tag_id,
            taggable_type=ref.taggable_type,
            taggable_id=ref.taggable_id,
        )


class Tagging(TaggingCreate):
    """Full tagging model with identifiers and timestamps."""

    id: uuid.UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
