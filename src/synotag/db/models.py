"""
Database models for synotag.

This module contains the SQLAlchemy models for tags and taggings, plus the
``Taggable`` mixin that host entities combine with ``Base`` to take part in
tagging.
"""

from __future__ import annotations

import datetime
import uuid
from typing import Any, ClassVar, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Uuid,
    inspect,
)
from sqlalchemy.orm import DeclarativeBase, InstrumentedAttribute, Mapped, mapped_column
from sqlalchemy.sql import func
from uuid_utils import uuid7

from synotag.config.settings import settings
from synotag.models.tag_list import TagList, TagListInput
from synotag.models.taggable import TaggableRef


def _uuid7() -> uuid.UUID:
    """Generate a UUIDv7 as a standard uuid.UUID."""
    return uuid.UUID(bytes=uuid7().bytes)


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Tag(Base):
    """
    Named label, optionally a synonym of a canonical tag.

    ``canonical_tag_id`` is either NULL (the tag is canonical) or points at a
    tag whose own link is NULL; the repository layer flattens every write.
    """

    __tablename__ = "tags"

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)

    # Tag identity
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_name: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )

    # Synonym link
    canonical_tag_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("tags.id", ondelete="SET NULL"), index=True
    )

    # Timestamps
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="check_tag_name_not_empty"),
        CheckConstraint(
            "canonical_tag_id IS NULL OR canonical_tag_id <> id",
            name="check_tag_not_own_canonical",
        ),
    )

    @property
    def is_canonical(self) -> bool:
        return self.canonical_tag_id is None

    @property
    def canonical_group_id(self) -> uuid.UUID:
        """Identity of the canonical tag this tag counts towards."""
        return self.id if self.canonical_tag_id is None else self.canonical_tag_id

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"<Tag {self.name!r} id={self.id}>"


class Tagging(Base):
    """Join record linking one taggable entity to one tag."""

    __tablename__ = "taggings"

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)

    tag_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False, index=True
    )
    taggable_type: Mapped[str] = mapped_column(String(100), nullable=False)
    taggable_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Timestamps
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_taggings_taggable", "taggable_type", "taggable_id"),
    )

    @property
    def taggable_ref(self) -> TaggableRef:
        return TaggableRef(taggable_type=self.taggable_type, taggable_id=self.taggable_id)


class Taggable:
    """
    Mixin for host entities that carry a tag list.

    Combine with ``Base`` on a declarative class with a single string primary
    key.  The mixin supplies the entity's ``TaggableRef``, an optional cached
    tag list column and a transient pending ``TagList`` that is written by
    ``TaggingService.save``.

    Examples
    --------
    >>> class Article(Taggable, Base):
    ...     __tablename__ = "articles"
    ...     __cached_tag_list_column__ = "cached_tag_list"
    ...     slug: Mapped[str] = mapped_column(String(64), primary_key=True)
    ...     cached_tag_list: Mapped[Optional[str]] = mapped_column(Text)
    """

    # Type tag stored on taggings; defaults to the class name
    __taggable_type__: ClassVar[Optional[str]] = None
    # Attribute holding the denormalized tag string, if any
    __cached_tag_list_column__: ClassVar[Optional[str]] = None

    @classmethod
    def taggable_type(cls) -> str:
        return cls.__taggable_type__ or cls.__name__

    @classmethod
    def taggable_key(cls) -> InstrumentedAttribute[Any]:
        """Return the mapped primary key attribute used to join taggings."""
        mapper = inspect(cls)
        if len(mapper.primary_key) != 1:
            raise TypeError(
                f"{cls.__name__} must have exactly one primary key column to be taggable"
            )
        prop = mapper.get_property_by_column(mapper.primary_key[0])
        return getattr(cls, prop.key)

    @classmethod
    def caching_tag_list(cls) -> bool:
        column = cls.__cached_tag_list_column__
        return column is not None and column in inspect(cls).attrs

    @property
    def taggable_ref(self) -> TaggableRef:
        key = type(self).taggable_key().key
        identifier = getattr(self, key)
        if identifier is None:
            raise ValueError(
                f"{type(self).__name__} needs a primary key value before it can be tagged"
            )
        return TaggableRef(taggable_type=self.taggable_type(), taggable_id=identifier)

    @property
    def pending_tag_list(self) -> Optional[TagList]:
        """The edited tag list awaiting save, or None when nothing was set."""
        return self.__dict__.get("_pending_tag_list")

    def set_tag_list(
        self, value: TagListInput, delimiter: Optional[str] = None
    ) -> TagList:
        """
        Replace the entity's tags; persisted by the next save.

        Strings are split on *delimiter*, ``settings.tag_list_delimiter`` by
        default.
        """
        tag_list = TagList.from_value(
            value, delimiter=delimiter or settings.tag_list_delimiter
        )
        self.__dict__["_pending_tag_list"] = tag_list
        return tag_list

    def discard_pending_tag_list(self) -> None:
        self.__dict__.pop("_pending_tag_list", None)
