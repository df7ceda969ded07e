"""
Tag set synchronization.

Diffs a taggable's pending ``TagList`` against the tags it is currently
linked to and applies the minimal set of link/unlink operations, creating
tags on first use.  Also hosts the cached tag list projection: the optional
denormalized string column mirroring an entity's tags.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from synotag.db.models import Taggable
from synotag.models.tag_list import DEFAULT_DELIMITER, TagList
from synotag.repositories.tag_repository import TagRepository
from synotag.repositories.tagging_repository import TaggingRepository

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one synchronization."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    destroyed: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class CachedTagListProjection:
    """Reads and writes the cached tag list column of a taggable."""

    def __init__(self, delimiter: str = DEFAULT_DELIMITER) -> None:
        self.delimiter = delimiter

    def refresh(self, taggable: Taggable) -> bool:
        """
        Overwrite the cached column with the pending tag list.

        Returns
        -------
        bool
            True if the column was written; False when the host has no cached
            column or no edit is pending.
        """
        pending = taggable.pending_tag_list
        if pending is None:
            return False
        return self.write(taggable, pending)

    def write(self, taggable: Taggable, tag_list: TagList) -> bool:
        """Serialize *tag_list* into the cached column; False without a column."""
        if not type(taggable).caching_tag_list():
            return False
        column = type(taggable).__cached_tag_list_column__
        serialized = TagList(*tag_list, delimiter=self.delimiter).to_string()
        setattr(taggable, column, serialized)  # type: ignore[arg-type]
        return True

    def is_unpopulated(self, taggable: Taggable) -> bool:
        """True when the host caches its tags but the column was never filled."""
        if taggable.pending_tag_list is not None or not type(taggable).caching_tag_list():
            return False
        column = type(taggable).__cached_tag_list_column__
        return getattr(taggable, column) is None  # type: ignore[arg-type]

    def read(self, taggable: Taggable) -> Optional[TagList]:
        """Parse the cached column, or None when not configured or not populated."""
        if not type(taggable).caching_tag_list():
            return None
        column = type(taggable).__cached_tag_list_column__
        cached = getattr(taggable, column)  # type: ignore[arg-type]
        if cached is None:
            return None
        return TagList.from_string(cached, delimiter=self.delimiter)


class TagSetSynchronizer:
    """Applies a taggable's pending tag list to its persisted taggings."""

    def __init__(
        self,
        tag_repo: TagRepository,
        tagging_repo: TaggingRepository,
        *,
        destroy_unused: bool = False,
    ) -> None:
        self._tag_repo = tag_repo
        self._tagging_repo = tagging_repo
        self.destroy_unused = destroy_unused

    async def sync(self, session: AsyncSession, taggable: Taggable) -> SyncResult:
        """
        Persist the pending tag list of *taggable*.

        Parameters
        ----------
        session : AsyncSession
            Database session (caller manages transaction).
        taggable : Taggable
            Host entity; must already have its primary key.

        Returns
        -------
        SyncResult
            Names added and removed, and names of tags destroyed because no
            tagging referenced them any more.  ``skipped`` is set when no tag
            list was ever assigned, in which case storage is not touched.
        """
        desired = taggable.pending_tag_list
        if desired is None:
            return SyncResult(skipped=True)

        ref = taggable.taggable_ref
        linked = await self._tagging_repo.get_tags_for(session, ref)

        to_remove = [tag for tag in linked if tag.name not in desired]
        to_add = desired.difference(linked)

        result = SyncResult()
        if to_remove:
            await self._tagging_repo.unlink(
                session, ref, [tag.id for tag in to_remove]
            )
            result.removed = [tag.name for tag in to_remove]

        for name in to_add:
            tag = await self._tag_repo.find_or_create_by_name(session, name)
            await self._tagging_repo.link(session, ref, tag)
            result.added.append(tag.name)

        if self.destroy_unused and to_remove:
            destroyed = await self._tag_repo.delete_unused(
                session, [tag.id for tag in to_remove]
            )
            result.destroyed = [tag.name for tag in destroyed]

        if result.changed:
            logger.info(
                "Synced tags of %s: +%s -%s",
                ref,
                result.added,
                result.removed,
            )
        else:
            logger.debug("Tags of %s already up to date", ref)
        return result
