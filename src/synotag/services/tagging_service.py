"""
Tagging service.

Facade over the tag repositories, the synchronizer and the query compiler.
Write paths (``save``, ``delete``) run every mutation inside the caller's
session transaction and roll it back on failure; read paths resolve query
tags and execute compiled ``QuerySpec``s.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, TypeVar, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from synotag.config.settings import settings
from synotag.db.models import Tag as TagDB
from synotag.db.models import Taggable
from synotag.db.models import Tagging as TaggingDB
from synotag.models.query_options import (
    FindTaggedWithOptions,
    TagCountOptions,
    parse_options,
)
from synotag.models.tag import TagCount
from synotag.models.tag_list import TagList
from synotag.repositories.tag_repository import TagInput, TagRepository
from synotag.repositories.tagging_repository import TaggingRepository
from synotag.services.query_compiler import TagQueryCompiler
from synotag.services.tag_synchronizer import (
    CachedTagListProjection,
    SyncResult,
    TagSetSynchronizer,
)

logger = logging.getLogger(__name__)

HostT = TypeVar("HostT", bound=Taggable)

FindOptions = Union[FindTaggedWithOptions, Mapping[str, Any], None]
CountOptions = Union[TagCountOptions, Mapping[str, Any], None]


class TaggingService:
    """
    Tagging operations for host entities.

    Parameters
    ----------
    tag_repo : TagRepository
        Tag lookup and creation.
    tagging_repo : TaggingRepository
        Join record access.
    compiler : TagQueryCompiler, optional
        Query compiler; defaults to one using the configured canonical mode.
    projection : CachedTagListProjection, optional
        Cached tag list column handling.
    destroy_unused : bool, optional
        Delete tags no longer used by any taggable after a save or delete.
        Defaults to ``settings.destroy_unused_tags``.
    """

    def __init__(
        self,
        tag_repo: TagRepository,
        tagging_repo: TaggingRepository,
        compiler: Optional[TagQueryCompiler] = None,
        projection: Optional[CachedTagListProjection] = None,
        *,
        destroy_unused: Optional[bool] = None,
    ) -> None:
        self._tag_repo = tag_repo
        self._tagging_repo = tagging_repo
        self._compiler = compiler or TagQueryCompiler(
            canonical_default=settings.canonical_queries
        )
        self._projection = projection or CachedTagListProjection(
            settings.tag_list_delimiter
        )
        if destroy_unused is None:
            destroy_unused = settings.destroy_unused_tags
        self._synchronizer = TagSetSynchronizer(
            tag_repo, tagging_repo, destroy_unused=destroy_unused
        )

    @property
    def synchronizer(self) -> TagSetSynchronizer:
        return self._synchronizer

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    async def save(self, session: AsyncSession, taggable: Taggable) -> SyncResult:
        """
        Persist *taggable* and its pending tag list.

        The cached tag list column is refreshed before the host row is
        flushed, so it already reflects the new list when the row becomes
        visible.  Without a pending edit, a cached column that was never
        filled is populated from the linked tags.  Tags and taggings are then
        synchronized in the same transaction.

        Parameters
        ----------
        session : AsyncSession
            Database session.  The caller commits; on any error the session
            is rolled back before the exception propagates.
        taggable : Taggable
            Host entity to save.

        Returns
        -------
        SyncResult
            What the synchronization changed.
        """
        try:
            self._projection.refresh(taggable)
            session.add(taggable)
            await session.flush()
            if self._projection.is_unpopulated(taggable):
                tags = await self._tagging_repo.get_tags_for(
                    session, taggable.taggable_ref
                )
                self._projection.write(taggable, TagList.from_value(tags))
                await session.flush()
            return await self._synchronizer.sync(session, taggable)
        except Exception:
            await session.rollback()
            raise

    async def delete(self, session: AsyncSession, taggable: Taggable) -> int:
        """Delete *taggable* together with its taggings; returns the tagging count."""
        try:
            ref = taggable.taggable_ref
            linked = await self._tagging_repo.get_tags_for(session, ref)
            removed = await self._tagging_repo.delete_for(session, ref)
            await session.delete(taggable)
            await session.flush()
            if self._synchronizer.destroy_unused and linked:
                await self._tag_repo.delete_unused(session, [tag.id for tag in linked])
        except Exception:
            await session.rollback()
            raise
        logger.debug("Deleted %s and %d tagging(s)", ref, removed)
        return removed

    # -------------------------------------------------------------------
    # Reads for one taggable
    # -------------------------------------------------------------------

    async def get_tag_list(
        self, session: AsyncSession, taggable: Taggable
    ) -> TagList:
        """
        Current tag list of *taggable*.

        A pending edit wins; otherwise a populated cached column is parsed;
        otherwise the list is derived from the linked tags.
        """
        pending = taggable.pending_tag_list
        if pending is not None:
            return pending.copy()

        cached = self._projection.read(taggable)
        if cached is not None:
            return cached

        tags = await self._tagging_repo.get_tags_for(session, taggable.taggable_ref)
        return TagList.from_value(tags, delimiter=self._projection.delimiter)

    async def reload(self, session: AsyncSession, taggable: Taggable) -> TagList:
        """Discard any pending edit, refresh the host row and re-read its tags."""
        taggable.discard_pending_tag_list()
        await session.refresh(taggable)
        return await self.get_tag_list(session, taggable)

    async def get_tags(self, session: AsyncSession, taggable: Taggable) -> List[TagDB]:
        return await self._tagging_repo.get_tags_for(session, taggable.taggable_ref)

    async def canonical_tags(
        self, session: AsyncSession, taggable: Taggable
    ) -> List[TagDB]:
        """Distinct canonical tags of the tags linked to *taggable*."""
        ref = taggable.taggable_ref
        member = aliased(TagDB, name="member_tags")
        groups = (
            select(func.coalesce(member.canonical_tag_id, member.id))
            .join(TaggingDB, TaggingDB.tag_id == member.id)
            .where(
                TaggingDB.taggable_type == ref.taggable_type,
                TaggingDB.taggable_id == ref.taggable_id,
            )
        )
        result = await session.execute(
            select(TagDB).where(TagDB.id.in_(groups)).order_by(TagDB.name)
        )
        return list(result.scalars().all())

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    async def find_tagged_with(
        self,
        session: AsyncSession,
        host: type[HostT],
        tags: TagInput,
        options: FindOptions = None,
        **kwargs: Any,
    ) -> List[HostT]:
        """
        Find *host* entities by tag membership.

        Parameters
        ----------
        session : AsyncSession
            Database session.
        host : type[Taggable]
            Host entity class to search.
        tags : str | TagList | Tag | Iterable[str | Tag]
            Query tags; names that match no tag are dropped.
        options : FindTaggedWithOptions | Mapping[str, Any] | None, optional
            Query options; keyword arguments are merged over them.

        Returns
        -------
        list
            Matching entities, each at most once.  Empty when no query tag
            resolves, and in ``match_all`` mode when any query name is
            unknown, since no entity can carry a tag that does not exist.

        Raises
        ------
        InvalidOptionError
            If the options contain an unknown key or combine ``match_all``
            with ``exclude``, or if a ``match_all`` or ``exclude`` query has
            ``conditions`` on ``Tagging`` or ``Tag``.  In the default any-of
            mode such conditions apply to the matching tagging and its tag.

        Examples
        --------
        >>> await service.find_tagged_with(session, Post, "awesome")
        [<Post p1>, <Post p2>]
        """
        parsed = parse_options(FindTaggedWithOptions, options, **kwargs)
        resolved = await self._tag_repo.resolve(
            session, tags, delimiter=self._projection.delimiter
        )
        query = self._compiler.find_tagged_with(host, resolved, parsed)

        if parsed.match_all:
            requested = (
                TagList(tags.name)
                if isinstance(tags, TagDB)
                else TagList.from_value(tags, delimiter=self._projection.delimiter)
            ).keys()
            found = {tag.normalized_name for tag in resolved}
            if requested - found:
                logger.debug("match_all query names unknown tags: %s", requested - found)
                return []

        if query is None:
            return []

        result = await session.execute(query.to_select())
        return list(result.scalars().all())

    async def tag_counts(
        self,
        session: AsyncSession,
        host: type[Taggable],
        options: CountOptions = None,
        **kwargs: Any,
    ) -> List[TagCount]:
        """Tag frequencies over all entities of *host*'s type."""
        parsed = parse_options(TagCountOptions, options, **kwargs)
        query = self._compiler.tag_counts_for_type(host, parsed)
        return await self._tag_repo.fetch_counts(session, query.to_select())

    async def tag_counts_for(
        self,
        session: AsyncSession,
        taggable: Taggable,
        options: CountOptions = None,
        **kwargs: Any,
    ) -> List[TagCount]:
        """
        Frequencies, across *taggable*'s whole type, of the tags it carries.

        Uses the linked tags, not a pending edit.
        """
        parsed = parse_options(TagCountOptions, options, **kwargs)
        tags = await self._tagging_repo.get_tags_for(session, taggable.taggable_ref)
        query = self._compiler.tag_counts_for_tags(type(taggable), tags, parsed)
        if query is None:
            return []
        return await self._tag_repo.fetch_counts(session, query.to_select())

    async def find_related_tags(
        self,
        session: AsyncSession,
        host: type[Taggable],
        tags: TagInput,
        options: CountOptions = None,
        **kwargs: Any,
    ) -> List[TagCount]:
        """
        Tags co-occurring with *tags* on *host* entities, with frequencies.

        The source tags (or, in canonical mode, their groups) are left out of
        the result.
        """
        parsed = parse_options(TagCountOptions, options, **kwargs)
        resolved = await self._tag_repo.resolve(
            session, tags, delimiter=self._projection.delimiter
        )
        query = self._compiler.related_tags(host, resolved, parsed)
        if query is None:
            return []
        return await self._tag_repo.fetch_counts(session, query.to_select())
