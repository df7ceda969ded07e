"""
Tag query compiler.

Turns validated query options into a ``QuerySpec``: an ordered list of join
clauses, a filter list, optional grouping/HAVING, ordering and a limit.  The
query is plain data that can be inspected in tests and is rendered to a
SQLAlchemy ``Select`` only at execution time, so the compiler never touches a
database.

Three shapes are produced for membership queries:

- any-of: one taggings/tags join, filtered to the query tags, DISTINCT;
- match-all: one aliased taggings join per query tag, each bound to that
  tag's id, so the intersection falls out of the joins without a
  GROUP BY/HAVING step;
- exclude: a NOT IN subquery over the taggables carrying any query tag,
  evaluated per taggable rather than per tagging row.

In canonical mode every tag is compared by its canonical group,
``coalesce(canonical_tag_id, id)``, so a synonym matches its canonical tag
and vice versa.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy import Select, Table, and_, distinct, func, select, text
from sqlalchemy.orm import aliased
from sqlalchemy.sql import visitors
from sqlalchemy.sql.elements import ClauseElement

from synotag.db.models import Tag as TagDB
from synotag.db.models import Taggable
from synotag.db.models import Tagging as TaggingDB
from synotag.exceptions import InvalidOptionError
from synotag.models.query_options import (
    FindTaggedWithOptions,
    QueryOptions,
    TagCountOptions,
)
from synotag.services.canonical_resolver import canonical_group_ids

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JoinClause:
    """An inner join of *target* on *onclause*."""

    target: Any
    onclause: Any


@dataclass
class QuerySpec:
    """Backend-agnostic description of a tag query."""

    columns: tuple[Any, ...]
    select_from: Any
    joins: list[JoinClause] = field(default_factory=list)
    filters: list[Any] = field(default_factory=list)
    group_by: list[Any] = field(default_factory=list)
    having: list[Any] = field(default_factory=list)
    order_by: list[Any] = field(default_factory=list)
    limit: Optional[int] = None
    distinct: bool = False

    def to_select(self) -> Select[Any]:
        """Render the query as a SQLAlchemy ``Select``."""
        stmt = select(*self.columns).select_from(self.select_from)
        for join in self.joins:
            stmt = stmt.join(join.target, join.onclause)
        if self.filters:
            stmt = stmt.where(and_(*self.filters))
        if self.group_by:
            stmt = stmt.group_by(*self.group_by)
        if self.having:
            stmt = stmt.having(and_(*self.having))
        if self.distinct:
            stmt = stmt.distinct()
        if self.order_by:
            stmt = stmt.order_by(
                *(text(clause) if isinstance(clause, str) else clause for clause in self.order_by)
            )
        if self.limit is not None:
            stmt = stmt.limit(self.limit)
        return stmt


def _group_of(tag: Any) -> Any:
    """SQL expression for the canonical group of a (possibly aliased) tag."""
    return func.coalesce(tag.canonical_tag_id, tag.id)


def _membership(tag: Any, ids: Sequence[uuid.UUID], canonical: bool) -> Any:
    if canonical:
        return _group_of(tag).in_(ids)
    return tag.id.in_(ids)


def _refers_to_tag_tables(expression: Any) -> bool:
    """True if *expression* reads a column of the unaliased tags or taggings table."""
    if hasattr(expression, "__clause_element__"):
        expression = expression.__clause_element__()
    if not isinstance(expression, ClauseElement):
        return False
    names = {TagDB.__tablename__, TaggingDB.__tablename__}
    for element in visitors.iterate(expression):
        table = getattr(element, "table", None)
        if isinstance(table, Table) and table.name in names:
            return True
    return False


def _unique_ids(tags: Sequence[TagDB]) -> list[uuid.UUID]:
    ids: list[uuid.UUID] = []
    for tag in tags:
        if tag.id not in ids:
            ids.append(tag.id)
    return ids


class TagQueryCompiler:
    """Compiles tag membership and frequency queries into ``QuerySpec``s."""

    def __init__(self, *, canonical_default: bool = True) -> None:
        self.canonical_default = canonical_default

    def is_canonical(self, options: QueryOptions) -> bool:
        if options.canonical is None:
            return self.canonical_default
        return options.canonical

    def query_ids(
        self, tags: Sequence[TagDB], options: QueryOptions
    ) -> list[uuid.UUID]:
        """Ids the query filters on: canonical groups or the tags themselves."""
        if self.is_canonical(options):
            return canonical_group_ids(tags)
        return _unique_ids(tags)

    # ------------------------------------------------------------------
    # Membership queries
    # ------------------------------------------------------------------

    def find_tagged_with(
        self,
        host: type[Taggable],
        tags: Sequence[TagDB],
        options: FindTaggedWithOptions,
    ) -> Optional[QuerySpec]:
        """
        Compile a query for *host* entities carrying *tags*.

        Parameters
        ----------
        host : type[Taggable]
            Mapped host entity class.
        tags : Sequence[TagDB]
            Resolved query tags.
        options : FindTaggedWithOptions
            Validated options selecting the mode.

        Returns
        -------
        QuerySpec | None
            None when there are no query tags: such a query has no results
            and must not degrade into an unfiltered find.

        Raises
        ------
        InvalidOptionError
            If a match-all or exclude query has conditions on ``Tagging`` or
            ``Tag``.  Only the any-of shape joins those tables unaliased.
        """
        if (options.match_all or options.exclude) and _refers_to_tag_tables(
            options.conditions
        ):
            raise InvalidOptionError(
                "conditions may only refer to Tagging or Tag in any-of queries"
            )
        if not tags:
            return None

        canonical = self.is_canonical(options)
        ids = self.query_ids(tags, options)
        key = host.taggable_key()
        taggable_type = host.taggable_type()
        query = QuerySpec(columns=(host,), select_from=host, distinct=True)

        if options.match_all:
            query.joins.extend(
                self._match_all_joins(key, taggable_type, ids, canonical)
            )
        elif options.exclude:
            query.filters.append(
                key.not_in(self._tagged_taggable_ids(taggable_type, ids, canonical))
            )
        else:
            # Unaliased so caller conditions on Tagging or Tag bind to this join.
            query.joins.append(
                JoinClause(
                    TaggingDB,
                    and_(
                        TaggingDB.taggable_id == key,
                        TaggingDB.taggable_type == taggable_type,
                    ),
                )
            )
            query.joins.append(JoinClause(TagDB, TagDB.id == TaggingDB.tag_id))
            query.filters.append(_membership(TagDB, ids, canonical))

        self._apply_common(query, options)
        logger.debug(
            "Compiled find_tagged_with for %s: %d tag(s), match_all=%s, exclude=%s, canonical=%s",
            taggable_type,
            len(ids),
            options.match_all,
            options.exclude,
            canonical,
        )
        return query

    def _match_all_joins(
        self,
        key: Any,
        taggable_type: str,
        ids: Sequence[uuid.UUID],
        canonical: bool,
    ) -> list[JoinClause]:
        """One join per query tag, each parameterised by that tag's id."""
        joins: list[JoinClause] = []
        for index, tag_id in enumerate(ids):
            taggings = aliased(TaggingDB, name=f"taggings_{index}")
            on_taggable = and_(
                taggings.taggable_id == key,
                taggings.taggable_type == taggable_type,
            )
            if canonical:
                tags_alias = aliased(TagDB, name=f"tags_{index}")
                joins.append(JoinClause(taggings, on_taggable))
                joins.append(
                    JoinClause(
                        tags_alias,
                        and_(
                            tags_alias.id == taggings.tag_id,
                            _group_of(tags_alias) == tag_id,
                        ),
                    )
                )
            else:
                joins.append(
                    JoinClause(taggings, and_(on_taggable, taggings.tag_id == tag_id))
                )
        return joins

    def _tagged_taggable_ids(
        self, taggable_type: str, ids: Sequence[uuid.UUID], canonical: bool
    ) -> Select[Any]:
        """Sub-select of taggable ids of this type carrying any of *ids*."""
        used_taggings = aliased(TaggingDB, name="used_taggings")
        used_tags = aliased(TagDB, name="used_tags")
        return (
            select(used_taggings.taggable_id)
            .join(used_tags, used_tags.id == used_taggings.tag_id)
            .where(
                used_taggings.taggable_type == taggable_type,
                _membership(used_tags, ids, canonical),
            )
        )

    # ------------------------------------------------------------------
    # Frequency queries
    # ------------------------------------------------------------------

    def tag_counts(
        self,
        options: TagCountOptions,
        *,
        joins: Sequence[JoinClause] = (),
        filters: Sequence[Any] = (),
    ) -> QuerySpec:
        """
        Compile a tag frequency aggregate.

        Rows are ``(id, name, count)``.  In canonical mode each tagging is
        credited to its tag's canonical group, so the rows carry canonical
        tags only.  The time window filters taggings before aggregation; the
        count bounds filter groups after it.

        Parameters
        ----------
        options : TagCountOptions
            Validated aggregate options.
        joins : Sequence[JoinClause], optional
            Scope joins added after the tag joins.
        filters : Sequence[Any], optional
            Scope filters.

        Returns
        -------
        QuerySpec
            The aggregate query; ``TagDB`` in it always denotes the row's tag.
        """
        count = func.count(distinct(TaggingDB.id))
        query = QuerySpec(
            columns=(TagDB.id, TagDB.name, count.label("count")),
            select_from=TaggingDB,
        )

        if self.is_canonical(options):
            member = aliased(TagDB, name="member_tags")
            query.joins.append(JoinClause(member, member.id == TaggingDB.tag_id))
            query.joins.append(JoinClause(TagDB, TagDB.id == _group_of(member)))
        else:
            query.joins.append(JoinClause(TagDB, TagDB.id == TaggingDB.tag_id))

        query.joins.extend(joins)
        query.filters.extend(filters)

        if options.start_at is not None:
            query.filters.append(TaggingDB.created_at >= options.start_at)
        if options.end_at is not None:
            query.filters.append(TaggingDB.created_at <= options.end_at)

        query.group_by = [TagDB.id, TagDB.name]
        query.having = [count > 0]
        if options.at_least is not None:
            query.having.append(count >= options.at_least)
        if options.at_most is not None:
            query.having.append(count <= options.at_most)

        self._apply_common(query, options)
        if not query.order_by:
            query.order_by = [count.desc(), TagDB.name]
        return query

    def tag_counts_for_type(
        self, host: type[Taggable], options: TagCountOptions
    ) -> QuerySpec:
        """Frequency aggregate over the taggings of one host type."""
        key = host.taggable_key()
        return self.tag_counts(
            options,
            joins=[JoinClause(host, key == TaggingDB.taggable_id)],
            filters=[TaggingDB.taggable_type == host.taggable_type()],
        )

    def tag_counts_for_tags(
        self,
        host: type[Taggable],
        tags: Sequence[TagDB],
        options: TagCountOptions,
    ) -> Optional[QuerySpec]:
        """Frequency aggregate over one host type restricted to *tags*."""
        if not tags:
            return None
        query = self.tag_counts_for_type(host, options)
        query.filters.append(TagDB.id.in_(self.query_ids(tags, options)))
        return query

    def related_tags(
        self,
        host: type[Taggable],
        source_tags: Sequence[TagDB],
        options: TagCountOptions,
    ) -> Optional[QuerySpec]:
        """
        Compile the tags co-occurring with *source_tags* on *host* entities.

        A restricted ``tag_counts``: joins from each counted tagging to its
        taggable and back out to the source taggings, keeps taggables that
        carry a source tag, and leaves the source tags themselves out.
        """
        if not source_tags:
            return None

        canonical = self.is_canonical(options)
        ids = self.query_ids(source_tags, options)
        key = host.taggable_key()
        source_taggings = aliased(TaggingDB, name="source_taggings")
        source_tags_alias = aliased(TagDB, name="source_tags")

        joins = [
            JoinClause(host, key == TaggingDB.taggable_id),
            JoinClause(
                source_taggings,
                and_(
                    source_taggings.taggable_id == key,
                    source_taggings.taggable_type == TaggingDB.taggable_type,
                ),
            ),
            JoinClause(
                source_tags_alias, source_tags_alias.id == source_taggings.tag_id
            ),
        ]
        filters = [
            TaggingDB.taggable_type == host.taggable_type(),
            _membership(source_tags_alias, ids, canonical),
            TagDB.id.not_in(ids),
        ]
        return self.tag_counts(options, joins=joins, filters=filters)

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    def _apply_common(self, query: QuerySpec, options: QueryOptions) -> None:
        if options.conditions is not None:
            query.filters.append(options.conditions)
        for target, onclause in options.joins:
            query.joins.append(JoinClause(target, onclause))
        if options.order:
            query.order_by = list(options.order)
        if options.limit is not None:
            query.limit = options.limit
