"""
Canonical link resolution for tag synonyms.

Keeps the tag hierarchy at most two levels deep and free of cycles.  Every
candidate canonical link goes through two passes before it is written:

1. load the chain of links reachable from the candidate;
2. flatten it with ``flatten_canonical_link``, a pure function.

A link that would lead back to the tag itself (including pointing a tag at
itself) is dropped, making the tag canonical.  Any other multi-hop chain is
collapsed so the tag points straight at the root of the chain.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Hashable, Iterable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from synotag.db.models import Tag as TagDB
from synotag.exceptions import TagValidationError

logger = logging.getLogger(__name__)

IdT = TypeVar("IdT", bound=Hashable)


def flatten_canonical_link(
    tag_id: IdT,
    candidate_id: Optional[IdT],
    parent_of: Callable[[IdT], Optional[IdT]],
) -> Optional[IdT]:
    """
    Compute the flattened canonical link for *tag_id*.

    Parameters
    ----------
    tag_id : Hashable
        Identity of the tag whose link is being set.
    candidate_id : Hashable | None
        The requested canonical tag, or None to make the tag canonical.
    parent_of : Callable
        Returns the current canonical link of a tag (None when canonical).

    Returns
    -------
    Hashable | None
        None when the walk from the candidate reaches *tag_id* again (a
        cycle), otherwise the last tag of the walk before it ends or starts
        repeating itself.

    Examples
    --------
    >>> links = {"awesome": "fantastic", "fantastic": None}
    >>> flatten_canonical_link("super", "awesome", links.get)
    'fantastic'
    >>> flatten_canonical_link("fantastic", "awesome", links.get) is None
    True
    >>> flatten_canonical_link("fantastic", "fantastic", links.get) is None
    True
    """
    if candidate_id is None:
        return None

    visited: set[IdT] = set()
    current = candidate_id
    while True:
        if current == tag_id:
            return None
        visited.add(current)
        parent = parent_of(current)
        if parent is None or parent in visited:
            return current
        current = parent


def is_canonical(tag: TagDB) -> bool:
    """A tag is canonical when it has no canonical link."""
    return tag.canonical_tag_id is None


def canonical_group_id(tag: TagDB) -> uuid.UUID:
    """Return the id of the canonical tag *tag* is grouped under."""
    return tag.id if tag.canonical_tag_id is None else tag.canonical_tag_id


def canonical_group_ids(tags: Iterable[TagDB]) -> list[uuid.UUID]:
    """Map tags to their canonical groups, deduplicated in first-seen order."""
    groups: list[uuid.UUID] = []
    for tag in tags:
        group_id = canonical_group_id(tag)
        if group_id not in groups:
            groups.append(group_id)
    return groups


class CanonicalResolver:
    """Validates and flattens candidate canonical links against the database."""

    async def flatten(
        self,
        session: AsyncSession,
        tag_id: uuid.UUID,
        candidate_id: Optional[uuid.UUID],
    ) -> Optional[uuid.UUID]:
        """
        Return the link *tag_id* should actually store for *candidate_id*.

        Parameters
        ----------
        session : AsyncSession
            Database session.
        tag_id : uuid.UUID
            The tag being linked.
        candidate_id : uuid.UUID | None
            Requested canonical tag.

        Returns
        -------
        uuid.UUID | None
            The root canonical tag, or None when the tag must stay canonical.

        Raises
        ------
        TagValidationError
            If the candidate (or a tag in its chain) does not exist.
        """
        if candidate_id is None:
            return None

        links = await self._load_chain(session, tag_id, candidate_id)
        resolved = flatten_canonical_link(tag_id, candidate_id, links.get)

        if resolved is None:
            logger.info(
                "Dropping canonical link %s -> %s: it would form a cycle",
                tag_id,
                candidate_id,
            )
        elif resolved != candidate_id:
            logger.debug(
                "Flattened canonical link %s -> %s to %s",
                tag_id,
                candidate_id,
                resolved,
            )
        return resolved

    async def _load_chain(
        self, session: AsyncSession, tag_id: uuid.UUID, start: uuid.UUID
    ) -> dict[uuid.UUID, Optional[uuid.UUID]]:
        """Fetch the canonical links reachable from *start*, one hop at a time."""
        links: dict[uuid.UUID, Optional[uuid.UUID]] = {}
        current: Optional[uuid.UUID] = start
        while current is not None and current != tag_id and current not in links:
            result = await session.execute(
                select(TagDB.canonical_tag_id).where(TagDB.id == current)
            )
            row = result.first()
            if row is None:
                raise TagValidationError(f"Canonical tag {current} does not exist")
            links[current] = row[0]
            current = row[0]
        return links
