"""
Taggable identity model.

Every host entity that can carry tags identifies itself to the tagging layer
through a ``TaggableRef``: the entity type tag plus the string form of its
primary key.  Join records store exactly these two values.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaggableRef(BaseModel):
    """Reference to one taggable entity (type tag and identifier)."""

    taggable_type: str = Field(
        ..., min_length=1, max_length=100, description="Host entity type tag"
    )
    taggable_id: str = Field(
        ..., min_length=1, max_length=64, description="Host primary key value"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("taggable_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: object) -> object:
        """Accept non-string keys by their string form."""
        if v is not None and not isinstance(v, str):
            return str(v)
        return v

    def __str__(self) -> str:
        return f"{self.taggable_type}:{self.taggable_id}"
