"""
Tests for TaggingService.

Exercises the write paths, the per-entity reads and the synonym-aware
queries against an in-memory SQLite schema.  Most scenarios build the
``fantastic`` canonical tag with ``awesome`` as its synonym.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from synotag.config.settings import settings
from synotag.db.models import Tag as TagDB
from synotag.db.models import Taggable
from synotag.db.models import Tagging as TaggingDB
from synotag.exceptions import InvalidOptionError
from synotag.models.query_options import FindTaggedWithOptions
from synotag.models.tag_list import TagList
from synotag.repositories import TagRepository, TaggingRepository
from synotag.services.tagging_service import TaggingService
from tests.factories.host_models import Photo, Post


async def _save(
    session: AsyncSession, service: TaggingService, entity: Taggable, tags: str
) -> Taggable:
    entity.set_tag_list(tags)
    await service.save(session, entity)
    return entity


async def _make_synonym(
    session: AsyncSession, tag_repo: TagRepository, synonym: str, canonical: str
) -> TagDB:
    tag = await tag_repo.find_or_create_by_name(session, synonym)
    root = await tag_repo.find_or_create_by_name(session, canonical)
    return await tag_repo.set_canonical(session, tag, root)


def _ids(posts: Iterable[Post]) -> set[str]:
    return {post.id for post in posts}


def _counts(rows: Iterable[object]) -> dict[str, int]:
    return {row.name: row.count for row in rows}  # type: ignore[attr-defined]


class TestSave:
    """Tests for TaggingService.save."""

    async def test_save_persists_host_and_tags(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        post = Post(id="p1", title="Hello")
        post.set_tag_list("python, sql")

        result = await tagging_service.save(db_session, post)

        assert result.added == ["python", "sql"]
        assert await db_session.get(Post, "p1") is post
        tags = await tagging_service.get_tags(db_session, post)
        assert [tag.name for tag in tags] == ["python", "sql"]

    async def test_save_without_tag_list_touches_no_taggings(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        post = await _save(db_session, tagging_service, Post(id="p1"), "a")
        post.discard_pending_tag_list()

        result = await tagging_service.save(db_session, post)

        assert result.skipped is True
        assert len(await tagging_service.get_tags(db_session, post)) == 1

    async def test_save_refreshes_cached_column(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        photo = await _save(db_session, tagging_service, Photo(id="ph1"), "b, a")
        assert photo.cached_tag_list == "b, a"

        photo.set_tag_list("a")
        await tagging_service.save(db_session, photo)
        assert photo.cached_tag_list == "a"

    async def test_save_fills_unpopulated_cached_column(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        photo = await _save(db_session, tagging_service, Photo(id="ph1"), "b, a")
        photo.discard_pending_tag_list()
        photo.cached_tag_list = None

        result = await tagging_service.save(db_session, photo)

        assert result.skipped is True
        assert photo.cached_tag_list == "b, a"

    async def test_save_without_tags_caches_empty_list(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        photo = Photo(id="ph1")

        await tagging_service.save(db_session, photo)

        assert photo.cached_tag_list == ""

    async def test_failure_rolls_back(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        post = Post(id="p1")
        post.set_tag_list("a")

        with patch.object(
            tagging_service.synchronizer,
            "sync",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            with pytest.raises(RuntimeError, match="boom"):
                await tagging_service.save(db_session, post)

        assert await db_session.get(Post, "p1") is None


class TestDelete:
    """Tests for TaggingService.delete."""

    async def test_delete_removes_taggings_keeps_tags(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
        tagging_repo: TaggingRepository,
    ) -> None:
        post = await _save(db_session, tagging_service, Post(id="p1"), "a, b")
        ref = post.taggable_ref

        removed = await tagging_service.delete(db_session, post)

        assert removed == 2
        assert await db_session.get(Post, "p1") is None
        assert await tagging_repo.get_for(db_session, ref) == []
        assert await tag_repo.get_by_name(db_session, "a") is not None

    async def test_delete_prunes_unused_tags_when_configured(
        self,
        db_session: AsyncSession,
        tag_repo: TagRepository,
        tagging_repo: TaggingRepository,
    ) -> None:
        service = TaggingService(tag_repo, tagging_repo, destroy_unused=True)
        first = await _save(db_session, service, Post(id="p1"), "shared, lonely")
        await _save(db_session, service, Post(id="p2"), "shared")

        await service.delete(db_session, first)

        assert await tag_repo.get_by_name(db_session, "lonely") is None
        assert await tag_repo.get_by_name(db_session, "shared") is not None


class TestTagListReads:
    """Tests for get_tag_list and reload."""

    async def test_pending_list_wins(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        post = await _save(db_session, tagging_service, Post(id="p1"), "a, b")
        post.set_tag_list("c")

        assert await tagging_service.get_tag_list(db_session, post) == TagList("c")

    async def test_returned_list_is_a_copy(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        post = Post(id="p1")
        post.set_tag_list("a")

        tag_list = await tagging_service.get_tag_list(db_session, post)
        tag_list.add("b")

        assert post.pending_tag_list == TagList("a")

    async def test_derived_from_taggings(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        post = await _save(db_session, tagging_service, Post(id="p1"), "a, b")
        post.discard_pending_tag_list()

        tag_list = await tagging_service.get_tag_list(db_session, post)
        assert tag_list.names == ["a", "b"]

    async def test_cached_column_is_used(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        photo = await _save(db_session, tagging_service, Photo(id="ph1"), "a, b")
        photo.discard_pending_tag_list()
        photo.cached_tag_list = "from cache"

        tag_list = await tagging_service.get_tag_list(db_session, photo)
        assert tag_list.names == ["from cache"]

    async def test_reload_discards_pending_edit(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        post = await _save(db_session, tagging_service, Post(id="p1"), "a, b")
        post.set_tag_list("unsaved")

        tag_list = await tagging_service.reload(db_session, post)

        assert tag_list == TagList("a", "b")
        assert post.pending_tag_list is None

    async def test_reload_reads_cached_column(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        photo = await _save(db_session, tagging_service, Photo(id="ph1"), "x, y")

        tag_list = await tagging_service.reload(db_session, photo)

        assert tag_list.names == ["x", "y"]

    async def test_canonical_tags(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
    ) -> None:
        await _make_synonym(db_session, tag_repo, "awesome", "fantastic")
        post = await _save(
            db_session, tagging_service, Post(id="p1"), "sql, awesome, fantastic"
        )

        tags = await tagging_service.canonical_tags(db_session, post)

        assert [tag.name for tag in tags] == ["fantastic", "sql"]


class TestCustomDelimiter:
    """The configured delimiter applies to parsing as well as the cache."""

    @pytest.fixture
    def semicolon_service(
        self,
        monkeypatch: pytest.MonkeyPatch,
        tag_repo: TagRepository,
        tagging_repo: TaggingRepository,
    ) -> TaggingService:
        monkeypatch.setattr(settings, "tag_list_delimiter", ";")
        return TaggingService(tag_repo, tagging_repo)

    async def test_save_splits_on_configured_delimiter(
        self, db_session: AsyncSession, semicolon_service: TaggingService
    ) -> None:
        photo = await _save(
            db_session, semicolon_service, Photo(id="ph1"), "python;sql, db"
        )

        tags = await semicolon_service.get_tags(db_session, photo)
        assert [tag.name for tag in tags] == ["python", "sql, db"]
        assert photo.cached_tag_list == "python; sql, db"

        photo.discard_pending_tag_list()
        tag_list = await semicolon_service.get_tag_list(db_session, photo)
        assert tag_list.names == ["python", "sql, db"]

    async def test_queries_split_on_configured_delimiter(
        self, db_session: AsyncSession, semicolon_service: TaggingService
    ) -> None:
        await _save(db_session, semicolon_service, Post(id="p1"), "a;b")
        await _save(db_session, semicolon_service, Post(id="p2"), "a")

        found = await semicolon_service.find_tagged_with(
            db_session, Post, "a; b", match_all=True
        )
        assert _ids(found) == {"p1"}

        related = await semicolon_service.find_related_tags(db_session, Post, "b")
        assert _counts(related) == {"a": 1}

    def test_explicit_delimiter_overrides_setting(self) -> None:
        post = Post(id="p1")
        assert post.set_tag_list("a|b", delimiter="|") == TagList("a", "b")


class TestFindTaggedWith:
    """Tests for membership queries."""

    @pytest.fixture
    async def posts(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
    ) -> None:
        await _make_synonym(db_session, tag_repo, "awesome", "fantastic")
        await _save(db_session, tagging_service, Post(id="p1"), "Very good, fantastic")
        await _save(db_session, tagging_service, Post(id="p2"), "Very good, awesome")
        await _save(db_session, tagging_service, Post(id="p3"), "Very good")
        await _save(db_session, tagging_service, Post(id="p4"), "")

    async def test_synonym_finds_canonical_and_synonyms(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        found = await tagging_service.find_tagged_with(db_session, Post, "awesome")
        assert _ids(found) == {"p1", "p2"}

        found = await tagging_service.find_tagged_with(db_session, Post, "FANTASTIC")
        assert _ids(found) == {"p1", "p2"}

    async def test_non_canonical_matches_exact_tag(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        found = await tagging_service.find_tagged_with(
            db_session, Post, "awesome", canonical=False
        )
        assert _ids(found) == {"p2"}

    async def test_any_of_returns_each_entity_once(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        found = await tagging_service.find_tagged_with(
            db_session, Post, ["Very good", "fantastic"]
        )
        assert sorted(post.id for post in found) == ["p1", "p2", "p3"]

    @pytest.mark.parametrize(
        "query", ["Very good, fantastic", "Very good, awesome", "awesome, fantastic, very good"]
    )
    async def test_match_all(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        posts: None,
        query: str,
    ) -> None:
        found = await tagging_service.find_tagged_with(
            db_session, Post, query, match_all=True
        )
        assert _ids(found) == {"p1", "p2"}

    async def test_match_all_non_canonical(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        found = await tagging_service.find_tagged_with(
            db_session,
            Post,
            "Very good, awesome",
            FindTaggedWithOptions(match_all=True, canonical=False),
        )
        assert _ids(found) == {"p2"}

    async def test_match_all_with_unknown_name_finds_nothing(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        found = await tagging_service.find_tagged_with(
            db_session, Post, "Very good, nonexistent", match_all=True
        )
        assert found == []

    async def test_exclude_is_the_complement(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        found = await tagging_service.find_tagged_with(
            db_session, Post, "awesome", exclude=True
        )
        assert _ids(found) == {"p3", "p4"}

    async def test_unknown_or_empty_query_finds_nothing(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        assert await tagging_service.find_tagged_with(db_session, Post, "") == []
        assert await tagging_service.find_tagged_with(db_session, Post, "nope") == []
        assert await tagging_service.find_tagged_with(db_session, Post, None) == []

    async def test_tag_instance_query(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
        posts: None,
    ) -> None:
        awesome = await tag_repo.get_by_name(db_session, "awesome")
        assert awesome is not None

        found = await tagging_service.find_tagged_with(
            db_session, Post, awesome, match_all=True
        )
        assert _ids(found) == {"p1", "p2"}

    async def test_conditions_order_and_limit(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        found = await tagging_service.find_tagged_with(
            db_session,
            Post,
            "Very good",
            conditions=Post.id != "p1",
            order=Post.id.desc(),
            limit=1,
        )
        assert [post.id for post in found] == ["p3"]

    async def test_conditions_on_tagging_filter_the_matching_tagging(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tagging_repo: TaggingRepository,
    ) -> None:
        old = await _save(db_session, tagging_service, Post(id="p1"), "a")
        await _save(db_session, tagging_service, Post(id="p2"), "b")
        for tagging in await tagging_repo.get_for(db_session, old.taggable_ref):
            tagging.created_at = datetime(2019, 6, 1, tzinfo=timezone.utc)
        await db_session.flush()

        recent = TaggingDB.created_at >= datetime(2020, 1, 1, tzinfo=timezone.utc)

        assert await tagging_service.find_tagged_with(
            db_session, Post, "a", conditions=recent
        ) == []
        found = await tagging_service.find_tagged_with(
            db_session, Post, "a, b", conditions=recent
        )
        assert _ids(found) == {"p2"}

    async def test_tag_conditions_rejected_in_match_all(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        with pytest.raises(InvalidOptionError):
            await tagging_service.find_tagged_with(
                db_session,
                Post,
                "Very good, nonexistent",
                match_all=True,
                conditions=TagDB.name != "x",
            )

    async def test_other_types_are_not_matched(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        await _save(db_session, tagging_service, Photo(id="p1"), "fantastic")

        photos = await tagging_service.find_tagged_with(db_session, Photo, "fantastic")
        assert _ids(photos) == {"p1"}
        assert all(isinstance(photo, Photo) for photo in photos)

    async def test_unknown_option_raises(
        self, db_session: AsyncSession, tagging_service: TaggingService, posts: None
    ) -> None:
        with pytest.raises(InvalidOptionError):
            await tagging_service.find_tagged_with(
                db_session, Post, "awesome", matchall=True
            )
        with pytest.raises(InvalidOptionError):
            await tagging_service.find_tagged_with(
                db_session, Post, "awesome", {"match_all": True, "exclude": True}
            )


class TestTagCounts:
    """Tests for frequency aggregates."""

    async def test_synonyms_count_toward_canonical(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
    ) -> None:
        await _make_synonym(db_session, tag_repo, "awesome", "fantastic")
        await _save(db_session, tagging_service, Post(id="p1"), "fantastic")
        await _save(db_session, tagging_service, Post(id="p2"), "awesome")

        counts = await tagging_service.tag_counts(db_session, Post)
        assert _counts(counts) == {"fantastic": 2}

        await _save(db_session, tagging_service, Post(id="p3"), "awesome")
        counts = await tagging_service.tag_counts(db_session, Post)
        assert _counts(counts) == {"fantastic": 3}

    async def test_plain_counts_keep_synonyms_apart(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
    ) -> None:
        await _make_synonym(db_session, tag_repo, "awesome", "fantastic")
        await _save(db_session, tagging_service, Post(id="p1"), "fantastic")
        await _save(db_session, tagging_service, Post(id="p2"), "awesome")

        counts = await tagging_service.tag_counts(db_session, Post, canonical=False)
        assert _counts(counts) == {"fantastic": 1, "awesome": 1}

    async def test_bounds_and_default_order(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        await _save(db_session, tagging_service, Post(id="p1"), "a, b, c")
        await _save(db_session, tagging_service, Post(id="p2"), "a, b")
        await _save(db_session, tagging_service, Post(id="p3"), "a")

        every = await tagging_service.tag_counts(db_session, Post)
        assert [(row.name, row.count) for row in every] == [("a", 3), ("b", 2), ("c", 1)]

        at_least = await tagging_service.tag_counts(db_session, Post, at_least=2)
        assert [row.name for row in at_least] == ["a", "b"]

        at_most = await tagging_service.tag_counts(db_session, Post, at_most=2)
        assert [row.name for row in at_most] == ["b", "c"]

        window = await tagging_service.tag_counts(
            db_session, Post, {"at_least": 2, "at_most": 2}
        )
        assert [row.name for row in window] == ["b"]

    async def test_time_window(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tagging_repo: TaggingRepository,
    ) -> None:
        stamps = {
            "p1": datetime(2024, 1, 10, tzinfo=timezone.utc),
            "p2": datetime(2024, 3, 1, tzinfo=timezone.utc),
            "p3": datetime(2024, 1, 20, tzinfo=timezone.utc),
        }
        await _save(db_session, tagging_service, Post(id="p1"), "a")
        await _save(db_session, tagging_service, Post(id="p2"), "a")
        await _save(db_session, tagging_service, Post(id="p3"), "b")
        for post_id, stamp in stamps.items():
            post = await db_session.get(Post, post_id)
            assert post is not None
            for tagging in await tagging_repo.get_for(db_session, post.taggable_ref):
                tagging.created_at = stamp
        await db_session.flush()

        counts = await tagging_service.tag_counts(
            db_session,
            Post,
            start_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            end_at=datetime(2024, 1, 31, tzinfo=timezone.utc),
        )
        assert _counts(counts) == {"a": 1, "b": 1}

    async def test_counts_are_scoped_to_type(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        await _save(db_session, tagging_service, Post(id="p1"), "a")
        await _save(db_session, tagging_service, Photo(id="ph1"), "a, b")

        assert _counts(await tagging_service.tag_counts(db_session, Post)) == {"a": 1}
        assert _counts(await tagging_service.tag_counts(db_session, Photo)) == {
            "a": 1,
            "b": 1,
        }

    async def test_global_counts_span_types(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
    ) -> None:
        await _save(db_session, tagging_service, Post(id="p1"), "a")
        await _save(db_session, tagging_service, Photo(id="ph1"), "a, b")

        assert _counts(await tag_repo.counts(db_session)) == {"a": 2, "b": 1}

    async def test_tag_counts_for_entity(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
    ) -> None:
        await _make_synonym(db_session, tag_repo, "awesome", "fantastic")
        first = await _save(db_session, tagging_service, Post(id="p1"), "fantastic, python")
        await _save(db_session, tagging_service, Post(id="p2"), "awesome")
        await _save(db_session, tagging_service, Post(id="p3"), "python, ruby")

        counts = await tagging_service.tag_counts_for(db_session, first)

        assert _counts(counts) == {"fantastic": 2, "python": 2}

    async def test_tag_counts_for_untagged_entity(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        post = await _save(db_session, tagging_service, Post(id="p1"), "")
        assert await tagging_service.tag_counts_for(db_session, post) == []

    async def test_unknown_option_raises(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        with pytest.raises(InvalidOptionError):
            await tagging_service.tag_counts(db_session, Post, {"start": "2024"})


class TestRelatedTags:
    """Tests for find_related_tags."""

    async def test_related_through_synonym(
        self,
        db_session: AsyncSession,
        tagging_service: TaggingService,
        tag_repo: TagRepository,
    ) -> None:
        await _make_synonym(db_session, tag_repo, "awesome", "fantastic")
        await _save(db_session, tagging_service, Post(id="p1"), "fantastic, python")
        await _save(db_session, tagging_service, Post(id="p2"), "awesome, sql, python")
        await _save(db_session, tagging_service, Post(id="p3"), "ruby")

        related = await tagging_service.find_related_tags(db_session, Post, "awesome")

        assert [(row.name, row.count) for row in related] == [("python", 2), ("sql", 1)]

    async def test_no_source_tags(
        self, db_session: AsyncSession, tagging_service: TaggingService
    ) -> None:
        await _save(db_session, tagging_service, Post(id="p1"), "a, b")
        assert await tagging_service.find_related_tags(db_session, Post, "zzz") == []
