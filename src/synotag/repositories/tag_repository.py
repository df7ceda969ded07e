"""
Tag repository implementation.

Owns creation and lookup of tags by case-insensitive name, canonical link
management (flattened through ``CanonicalResolver``), resolution of mixed
tag/name inputs, and the global tag frequency aggregate.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from sqlalchemy import Select, exists, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from synotag.config.settings import settings
from synotag.db.models import Tag as TagDB
from synotag.db.models import Tagging as TaggingDB
from synotag.db.models import _uuid7
from synotag.exceptions import TagValidationError
from synotag.models.query_options import TagCountOptions, parse_options
from synotag.models.tag import TagCount, TagCreate, TagUpdate
from synotag.models.tag_list import TagList, normalize_tag_name, tag_key
from synotag.repositories.base import BaseSQLAlchemyRepository, _as_dict
from synotag.services.canonical_resolver import CanonicalResolver, canonical_group_ids
from synotag.services.query_compiler import TagQueryCompiler

logger = logging.getLogger(__name__)

TagInput = Union[str, TagList, TagDB, Iterable[Union[str, TagDB]], None]


def _is_persisted(tag: TagDB) -> bool:
    return inspect(tag).has_identity


class TagRepository(
    BaseSQLAlchemyRepository[TagDB, TagCreate, TagUpdate, uuid.UUID]
):
    """Repository for tag CRUD, lookup and canonical link operations."""

    def __init__(
        self,
        resolver: Optional[CanonicalResolver] = None,
        compiler: Optional[TagQueryCompiler] = None,
    ) -> None:
        """Initialize repository with Tag model."""
        super().__init__(TagDB)
        self._resolver = resolver or CanonicalResolver()
        self._compiler = compiler or TagQueryCompiler(
            canonical_default=settings.canonical_queries
        )

    # -------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------

    async def get_by_name(
        self, session: AsyncSession, name: str
    ) -> Optional[TagDB]:
        """
        Look up a tag by name, ignoring case and surrounding whitespace.

        Parameters
        ----------
        session : AsyncSession
            Database session.
        name : str
            Tag name in any spelling.

        Returns
        -------
        TagDB | None
            The matching tag, or None if no tag has this identity key.
        """
        key = tag_key(name)
        if not key:
            return None
        result = await session.execute(
            select(TagDB).where(TagDB.normalized_name == key)
        )
        return result.scalar_one_or_none()

    async def get_by_names(
        self, session: AsyncSession, names: Iterable[str]
    ) -> List[TagDB]:
        """Look up several names at once; unknown names are skipped."""
        keys: list[str] = []
        for name in names:
            key = tag_key(name)
            if key and key not in keys:
                keys.append(key)
        if not keys:
            return []

        result = await session.execute(
            select(TagDB).where(TagDB.normalized_name.in_(keys))
        )
        by_key = {tag.normalized_name: tag for tag in result.scalars().all()}
        return [by_key[key] for key in keys if key in by_key]

    async def resolve(
        self,
        session: AsyncSession,
        value: TagInput,
        delimiter: Optional[str] = None,
    ) -> List[TagDB]:
        """
        Resolve names and/or tags into persisted tags.

        Parameters
        ----------
        session : AsyncSession
            Database session.
        value : str | TagList | TagDB | Iterable[str | TagDB] | None
            A delimited string, a ``TagList``, a single tag, or a mix of tags
            and names.
        delimiter : str, optional
            Delimiter for string input.  Defaults to
            ``settings.tag_list_delimiter``.

        Returns
        -------
        list[TagDB]
            Persisted tags used as given, followed by tags found by name.
            Names with no matching tag are dropped; this never creates tags.
        """
        if value is None:
            return []
        if isinstance(value, TagDB):
            if _is_persisted(value):
                return [value]
            return await self.get_by_names(session, [value.name])

        if isinstance(value, (str, TagList)):
            return await self.get_by_names(
                session,
                TagList.from_value(
                    value, delimiter=delimiter or settings.tag_list_delimiter
                ),
            )

        resolved: list[TagDB] = []
        names = TagList()
        for item in value:
            if isinstance(item, TagDB) and _is_persisted(item):
                resolved.append(item)
            else:
                names.add(str(getattr(item, "name", item)))

        seen = {tag.id for tag in resolved}
        for tag in await self.get_by_names(session, names):
            if tag.id not in seen:
                resolved.append(tag)
                seen.add(tag.id)
        return resolved

    async def canonical_groups(
        self, session: AsyncSession, value: TagInput
    ) -> List[uuid.UUID]:
        """Resolve *value* and map each tag to its canonical group id."""
        return canonical_group_ids(await self.resolve(session, value))

    async def get_synonyms(
        self, session: AsyncSession, tag: TagDB
    ) -> List[TagDB]:
        """Return the tags whose canonical link points at *tag*."""
        result = await session.execute(
            select(TagDB)
            .where(TagDB.canonical_tag_id == tag.id)
            .order_by(TagDB.name)
        )
        return list(result.scalars().all())

    def restrict_taggable_type(self, taggable_type: str) -> Select[Any]:
        """Select of the tags used by at least one entity of *taggable_type*."""
        return select(TagDB).where(
            exists().where(
                TaggingDB.tag_id == TagDB.id,
                TaggingDB.taggable_type == taggable_type,
            )
        )

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    async def create(
        self, session: AsyncSession, *, obj_in: TagCreate
    ) -> TagDB:
        """
        Create a tag, flattening its canonical link if one is given.

        Raises
        ------
        TagValidationError
            If the name is empty, too long, or already taken under
            case-insensitive comparison, or the canonical tag is missing.
        """
        name = self._validate_name(obj_in.name)
        if await self.get_by_name(session, name) is not None:
            raise TagValidationError(f"Tag '{name}' already exists", tag_name=name)

        tag = TagDB(id=_uuid7(), name=name, normalized_name=tag_key(name))
        if obj_in.canonical_tag_id is not None:
            tag.canonical_tag_id = await self._resolver.flatten(
                session, tag.id, obj_in.canonical_tag_id
            )

        session.add(tag)
        await session.flush()
        await session.refresh(tag)
        logger.debug("Created tag %r (canonical=%s)", tag.name, tag.canonical_tag_id)
        return tag

    async def find_or_create_by_name(self, session: AsyncSession, name: str) -> TagDB:
        """
        Return the tag named *name*, creating a canonical tag if missing.

        Not atomic against a concurrent transaction creating the same new
        name; the loser gets the unique constraint's ``IntegrityError``.
        """
        existing = await self.get_by_name(session, name)
        if existing is not None:
            return existing
        return await self.create(session, obj_in=TagCreate(name=name))

    async def update(
        self,
        session: AsyncSession,
        *,
        db_obj: TagDB,
        obj_in: Union[TagUpdate, dict[str, Any]],
    ) -> TagDB:
        """Rename a tag and/or change its canonical link."""
        update_data = _as_dict(obj_in, exclude_unset=True)

        if update_data.get("name") is not None:
            name = self._validate_name(update_data["name"])
            other = await self.get_by_name(session, name)
            if other is not None and other.id != db_obj.id:
                raise TagValidationError(f"Tag '{name}' already exists", tag_name=name)
            db_obj.name = name
            db_obj.normalized_name = tag_key(name)

        if "canonical_tag_id" in update_data:
            await self.set_canonical(session, db_obj, update_data["canonical_tag_id"])

        session.add(db_obj)
        await session.flush()
        await session.refresh(db_obj)
        return db_obj

    async def set_canonical(
        self,
        session: AsyncSession,
        tag: TagDB,
        canonical: Union[TagDB, uuid.UUID, None],
    ) -> TagDB:
        """
        Make *tag* a synonym of *canonical* (or canonical when None).

        The candidate link is flattened first: a link that would loop back
        to *tag* is dropped, and a link to a synonym is redirected to that
        synonym's canonical tag.  Tags that were synonyms of *tag* follow it
        to its new canonical tag so no chain grows past one hop.

        Parameters
        ----------
        session : AsyncSession
            Database session (caller manages transaction).
        tag : TagDB
            The tag to relink.
        canonical : TagDB | uuid.UUID | None
            Requested canonical tag.

        Returns
        -------
        TagDB
            *tag* with its flattened link applied.
        """
        candidate_id = canonical.id if isinstance(canonical, TagDB) else canonical
        resolved = await self._resolver.flatten(session, tag.id, candidate_id)
        tag.canonical_tag_id = resolved

        if resolved is not None:
            await session.execute(
                update(TagDB)
                .where(TagDB.canonical_tag_id == tag.id)
                .values(canonical_tag_id=resolved)
            )

        await session.flush()
        logger.info(
            "Tag %r is now %s",
            tag.name,
            "canonical" if resolved is None else f"a synonym of {resolved}",
        )
        return tag

    async def delete(
        self, session: AsyncSession, *, id: uuid.UUID
    ) -> Optional[TagDB]:
        """
        Delete a tag and its taggings.

        Synonyms of the deleted tag are promoted to canonical rather than
        deleted with it.
        """
        tag = await self.get(session, id)
        if tag is None:
            return None

        promoted = await session.execute(
            update(TagDB)
            .where(TagDB.canonical_tag_id == id)
            .values(canonical_tag_id=None)
        )
        await session.execute(
            TaggingDB.__table__.delete().where(TaggingDB.tag_id == id)
        )
        await session.delete(tag)
        await session.flush()
        logger.info(
            "Deleted tag %r, promoted %d synonym(s)", tag.name, promoted.rowcount or 0
        )
        return tag

    async def delete_unused(
        self, session: AsyncSession, tag_ids: Sequence[uuid.UUID]
    ) -> List[TagDB]:
        """Delete those of *tag_ids* that no tagging references any more."""
        if not tag_ids:
            return []
        result = await session.execute(
            select(TagDB.id).where(
                TagDB.id.in_(list(tag_ids)),
                ~exists().where(TaggingDB.tag_id == TagDB.id),
            )
        )
        deleted: list[TagDB] = []
        for unused_id in result.scalars().all():
            tag = await self.delete(session, id=unused_id)
            if tag is not None:
                deleted.append(tag)
        return deleted

    # -------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------

    async def counts(
        self,
        session: AsyncSession,
        options: Union[TagCountOptions, Mapping[str, Any], None] = None,
        **kwargs: Any,
    ) -> List[TagCount]:
        """
        Tag frequencies across every taggable type.

        Parameters
        ----------
        session : AsyncSession
            Database session.
        options : TagCountOptions | Mapping[str, Any] | None, optional
            Aggregate options; keyword arguments are merged over them.

        Returns
        -------
        list[TagCount]
            One row per tag (or canonical group) with a non-zero count.
        """
        parsed = parse_options(TagCountOptions, options, **kwargs)
        query = self._compiler.tag_counts(parsed)
        return await self.fetch_counts(session, query.to_select())

    async def fetch_counts(
        self, session: AsyncSession, stmt: Select[Any]
    ) -> List[TagCount]:
        """Execute a compiled aggregate and wrap its rows."""
        result = await session.execute(stmt)
        return [
            TagCount(id=tag_id, name=name, count=count)
            for tag_id, name, count in result.all()
        ]

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _validate_name(self, raw_name: str) -> str:
        name = normalize_tag_name(raw_name)
        if not name:
            raise TagValidationError("Tag name cannot be empty", tag_name=raw_name)
        if len(name) > settings.max_tag_length:
            raise TagValidationError(
                f"Tag name exceeds {settings.max_tag_length} characters",
                tag_name=name,
            )
        return name
