"""
Tests for query option models and option bag parsing.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy import literal

from synotag.exceptions import InvalidOptionError
from synotag.models.query_options import (
    FindTaggedWithOptions,
    QueryOptions,
    TagCountOptions,
    parse_options,
)


class TestFindTaggedWithOptions:
    """Tests for FindTaggedWithOptions validation."""

    def test_defaults(self) -> None:
        options = FindTaggedWithOptions()
        assert options.match_all is False
        assert options.exclude is False
        assert options.conditions is None
        assert options.joins == ()
        assert options.order == ()
        assert options.limit is None
        assert options.canonical is None

    def test_match_all_and_exclude_are_exclusive(self) -> None:
        with pytest.raises(ValidationError):
            FindTaggedWithOptions(match_all=True, exclude=True)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FindTaggedWithOptions(matchall=True)  # type: ignore[call-arg]

    def test_single_order_is_wrapped(self) -> None:
        options = FindTaggedWithOptions(order="posts.id DESC")
        assert options.order == ("posts.id DESC",)

    def test_single_join_is_wrapped(self) -> None:
        target, onclause = object(), literal(True)
        options = FindTaggedWithOptions(joins=(target, onclause))
        assert options.joins == ((target, onclause),)

    def test_limit_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            FindTaggedWithOptions(limit=0)

    def test_frozen(self) -> None:
        options = FindTaggedWithOptions()
        with pytest.raises(ValidationError):
            options.match_all = True  # type: ignore[misc]


class TestTagCountOptions:
    """Tests for TagCountOptions validation."""

    def test_bounds(self) -> None:
        options = TagCountOptions(at_least=2, at_most=5)
        assert options.at_least == 2
        assert options.at_most == 5

    def test_at_least_cannot_exceed_at_most(self) -> None:
        with pytest.raises(ValidationError):
            TagCountOptions(at_least=5, at_most=2)

    def test_negative_bound_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TagCountOptions(at_least=-1)

    def test_time_window_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            TagCountOptions(
                start_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
                end_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            )

    def test_match_all_is_not_a_count_option(self) -> None:
        with pytest.raises(ValidationError):
            TagCountOptions(match_all=True)  # type: ignore[call-arg]


class TestParseOptions:
    """Tests for parse_options."""

    def test_none_gives_defaults(self) -> None:
        options = parse_options(FindTaggedWithOptions)
        assert options == FindTaggedWithOptions()

    def test_mapping(self) -> None:
        options = parse_options(FindTaggedWithOptions, {"match_all": True})
        assert options.match_all is True

    def test_keyword_overrides(self) -> None:
        options = parse_options(TagCountOptions, {"limit": 5}, limit=10, at_least=1)
        assert options.limit == 10
        assert options.at_least == 1

    def test_instance_passthrough(self) -> None:
        options = TagCountOptions(limit=3)
        assert parse_options(TagCountOptions, options) is options

    def test_instance_with_overrides_keeps_set_fields(self) -> None:
        options = parse_options(
            TagCountOptions, TagCountOptions(limit=3), at_most=9
        )
        assert options.limit == 3
        assert options.at_most == 9

    def test_unknown_key_raises_invalid_option(self) -> None:
        with pytest.raises(InvalidOptionError) as exc_info:
            parse_options(FindTaggedWithOptions, {"matchall": True, "foo": 1})
        assert sorted(exc_info.value.invalid_keys) == ["foo", "matchall"]
        assert "matchall" in exc_info.value.message

    def test_unknown_keyword_raises_invalid_option(self) -> None:
        with pytest.raises(InvalidOptionError):
            parse_options(TagCountOptions, start="2024-01-01")

    def test_conflicting_modes_raise_invalid_option(self) -> None:
        with pytest.raises(InvalidOptionError) as exc_info:
            parse_options(FindTaggedWithOptions, match_all=True, exclude=True)
        assert exc_info.value.invalid_keys == []
        assert "match_all and exclude" in exc_info.value.message

    def test_bad_value_raises_invalid_option(self) -> None:
        with pytest.raises(InvalidOptionError):
            parse_options(TagCountOptions, limit=-1)

    def test_base_options_model(self) -> None:
        options = parse_options(QueryOptions, canonical=False)
        assert options.canonical is False
