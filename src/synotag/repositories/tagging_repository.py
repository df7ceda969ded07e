"""
Tagging repository implementation.

Provides data access for the join records linking taggable entities to tags:
reading an entity's linked tags, linking and unlinking, and per-tag usage
counts.
"""

from __future__ import annotations

import uuid
from typing import Any, List, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from synotag.db.models import Tag as TagDB
from synotag.db.models import Tagging as TaggingDB
from synotag.models.taggable import TaggableRef
from synotag.models.tagging import TaggingCreate
from synotag.repositories.base import BaseSQLAlchemyRepository


class TaggingRepository(
    BaseSQLAlchemyRepository[TaggingDB, TaggingCreate, dict[str, Any], uuid.UUID]
):
    """Repository for tagging operations."""

    def __init__(self) -> None:
        super().__init__(TaggingDB)

    async def get_for(
        self, session: AsyncSession, ref: TaggableRef
    ) -> List[TaggingDB]:
        """Get all taggings of one taggable, oldest first."""
        result = await session.execute(
            select(TaggingDB)
            .where(
                TaggingDB.taggable_type == ref.taggable_type,
                TaggingDB.taggable_id == ref.taggable_id,
            )
            .order_by(TaggingDB.created_at, TaggingDB.id)
        )
        return list(result.scalars().all())

    async def get_tags_for(
        self, session: AsyncSession, ref: TaggableRef
    ) -> List[TagDB]:
        """Get the tags linked to one taggable, in the order they were added."""
        result = await session.execute(
            select(TagDB)
            .join(TaggingDB, TaggingDB.tag_id == TagDB.id)
            .where(
                TaggingDB.taggable_type == ref.taggable_type,
                TaggingDB.taggable_id == ref.taggable_id,
            )
            .order_by(TaggingDB.created_at, TaggingDB.id)
        )
        return list(result.scalars().all())

    async def link(
        self, session: AsyncSession, ref: TaggableRef, tag: TagDB
    ) -> TaggingDB:
        """Create the tagging linking *ref* to *tag*."""
        return await self.create(session, obj_in=TaggingCreate.for_ref(ref, tag.id))

    async def unlink(
        self,
        session: AsyncSession,
        ref: TaggableRef,
        tag_ids: Sequence[uuid.UUID],
    ) -> int:
        """Delete the taggings linking *ref* to any of *tag_ids*."""
        if not tag_ids:
            return 0
        result = await session.execute(
            delete(TaggingDB).where(
                TaggingDB.taggable_type == ref.taggable_type,
                TaggingDB.taggable_id == ref.taggable_id,
                TaggingDB.tag_id.in_(list(tag_ids)),
            )
        )
        await session.flush()
        return result.rowcount or 0

    async def delete_for(self, session: AsyncSession, ref: TaggableRef) -> int:
        """Delete every tagging of one taggable."""
        result = await session.execute(
            delete(TaggingDB).where(
                TaggingDB.taggable_type == ref.taggable_type,
                TaggingDB.taggable_id == ref.taggable_id,
            )
        )
        await session.flush()
        return result.rowcount or 0

    async def delete_for_tag(self, session: AsyncSession, tag_id: uuid.UUID) -> int:
        """Delete every tagging of one tag."""
        result = await session.execute(
            delete(TaggingDB).where(TaggingDB.tag_id == tag_id)
        )
        await session.flush()
        return result.rowcount or 0

    async def count_for_tag(self, session: AsyncSession, tag_id: uuid.UUID) -> int:
        """Number of taggings referencing a tag."""
        result = await session.execute(
            select(func.count()).select_from(TaggingDB).where(TaggingDB.tag_id == tag_id)
        )
        return result.scalar() or 0
