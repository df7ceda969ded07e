"""
Query option models.

Every option recognized by the tag query paths is declared here with its type
and default.  Option bags are validated eagerly: an unknown key or a
contradictory combination raises ``InvalidOptionError`` instead of being
silently ignored.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from synotag.exceptions import InvalidOptionError

OptionsT = TypeVar("OptionsT", bound="QueryOptions")


class QueryOptions(BaseModel):
    """
    Options shared by all tag queries.

    ``conditions`` is an opaque SQLAlchemy boolean expression added to the
    filter list.  ``joins`` is a sequence of ``(target, onclause)`` pairs
    appended after the joins the query needs itself.  ``order`` accepts
    SQLAlchemy order expressions or raw SQL strings.
    """

    conditions: Any = Field(default=None, description="Extra filter expression")
    joins: tuple[tuple[Any, Any], ...] = Field(
        default=(), description="Extra (target, onclause) joins"
    )
    order: tuple[Any, ...] = Field(default=(), description="ORDER BY clauses")
    limit: Optional[int] = Field(default=None, ge=1, description="Row limit")
    canonical: Optional[bool] = Field(
        default=None,
        description="Collapse synonyms under canonical tags (None = configured default)",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    @field_validator("order", mode="before")
    @classmethod
    def wrap_single_order(cls, v: Any) -> Any:
        """Allow a single order clause to be passed without a sequence."""
        if v is None:
            return ()
        if isinstance(v, (list, tuple)):
            return tuple(v)
        return (v,)

    @field_validator("joins", mode="before")
    @classmethod
    def wrap_joins(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, tuple) and len(v) == 2 and not isinstance(v[0], tuple):
            return (v,)
        return tuple(v)


class FindTaggedWithOptions(QueryOptions):
    """Options for finding taggables by tag membership."""

    match_all: bool = Field(
        default=False, description="Require every query tag, not just one"
    )
    exclude: bool = Field(
        default=False, description="Return taggables carrying none of the tags"
    )

    @model_validator(mode="after")
    def modes_are_exclusive(self) -> FindTaggedWithOptions:
        """match_all and exclude select different query shapes."""
        if self.match_all and self.exclude:
            raise ValueError("match_all and exclude cannot be combined")
        return self


class TagCountOptions(QueryOptions):
    """Options for tag frequency aggregates and related-tag queries."""

    start_at: Optional[datetime] = Field(
        default=None, description="Only count taggings created at or after"
    )
    end_at: Optional[datetime] = Field(
        default=None, description="Only count taggings created at or before"
    )
    at_least: Optional[int] = Field(
        default=None, ge=0, description="Minimum aggregate count (inclusive)"
    )
    at_most: Optional[int] = Field(
        default=None, ge=0, description="Maximum aggregate count (inclusive)"
    )

    @model_validator(mode="after")
    def bounds_are_ordered(self) -> TagCountOptions:
        if (
            self.at_least is not None
            and self.at_most is not None
            and self.at_least > self.at_most
        ):
            raise ValueError("at_least cannot exceed at_most")
        if (
            self.start_at is not None
            and self.end_at is not None
            and self.start_at > self.end_at
        ):
            raise ValueError("start_at cannot be later than end_at")
        return self


def parse_options(
    model: type[OptionsT],
    options: Union[OptionsT, Mapping[str, Any], None] = None,
    **overrides: Any,
) -> OptionsT:
    """
    Validate an option bag into *model*.

    Parameters
    ----------
    model : type[QueryOptions]
        The options model to build.
    options : QueryOptions | Mapping[str, Any] | None, optional
        An already-built options instance or a plain mapping.
    **overrides : Any
        Keyword options merged over *options*.

    Returns
    -------
    QueryOptions
        A validated instance of *model*.

    Raises
    ------
    InvalidOptionError
        If an unknown key is present or a value fails validation.

    Examples
    --------
    >>> parse_options(FindTaggedWithOptions, {"match_all": True}).match_all
    True
    >>> parse_options(FindTaggedWithOptions, matchall=True)
    Traceback (most recent call last):
    ...
    synotag.exceptions.InvalidOptionError: Unknown query option(s): matchall
    """
    if isinstance(options, model) and not overrides:
        return options

    data: dict[str, Any] = {}
    if isinstance(options, QueryOptions):
        data.update(
            {name: getattr(options, name) for name in options.model_fields_set}
        )
    elif options is not None:
        data.update(options)
    data.update(overrides)

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        unknown = [
            ".".join(str(part) for part in error["loc"])
            for error in exc.errors()
            if error["type"] == "extra_forbidden"
        ]
        if unknown:
            raise InvalidOptionError(
                f"Unknown query option(s): {', '.join(sorted(unknown))}",
                invalid_keys=unknown,
            ) from exc
        messages = "; ".join(error["msg"] for error in exc.errors())
        raise InvalidOptionError(f"Invalid query options: {messages}") from exc
