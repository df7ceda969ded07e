"""
Custom exceptions for the synotag package.

This module defines domain-specific exceptions raised by the tagging
repositories and services: tag validation failures, malformed query option
bags and lookups of tags that must exist.
"""

from __future__ import annotations

from typing import Optional, Sequence


class SynotagError(Exception):
    """Base exception for all synotag errors."""

    def __init__(self, message: str) -> None:
        """
        Initialize SynotagError.

        Parameters
        ----------
        message : str
            Human-readable error message.
        """
        self.message = message
        super().__init__(message)


class TagValidationError(SynotagError):
    """
    Exception raised when a tag cannot be persisted as given.

    Raised for empty names (blank after whitespace normalization), names
    exceeding the configured maximum length, names that collide with an
    existing tag under case-insensitive comparison, and canonical links that
    point at a tag which does not exist.

    Attributes
    ----------
    message : str
        Human-readable error message.
    tag_name : str | None
        The offending tag name, when one is involved.

    Examples
    --------
    >>> try:
    ...     await tag_repo.create(session, obj_in=TagCreate(name="Python"))
    ... except TagValidationError as e:
    ...     print(f"Rejected {e.tag_name!r}: {e.message}")
    """

    def __init__(self, message: str, tag_name: Optional[str] = None) -> None:
        """
        Initialize TagValidationError.

        Parameters
        ----------
        message : str
            Human-readable error message.
        tag_name : str | None, optional
            The offending tag name (default: None).
        """
        self.tag_name = tag_name
        super().__init__(message)


class InvalidOptionError(SynotagError):
    """
    Exception raised when a query option bag is malformed.

    Unknown keys are rejected rather than silently ignored, and so are
    contradictory combinations such as ``match_all`` together with
    ``exclude``.

    Attributes
    ----------
    message : str
        Human-readable error message.
    invalid_keys : list[str]
        Option keys that were not recognized (empty for value errors).
    """

    def __init__(
        self, message: str, invalid_keys: Optional[Sequence[str]] = None
    ) -> None:
        """
        Initialize InvalidOptionError.

        Parameters
        ----------
        message : str
            Human-readable error message.
        invalid_keys : Sequence[str] | None, optional
            Unrecognized option keys (default: None).
        """
        self.invalid_keys = list(invalid_keys or [])
        super().__init__(message)


class TagNotFoundError(SynotagError):
    """
    Exception raised when an operation addresses a tag that does not exist.

    Only management operations (aliasing, deletion) raise this. Query paths
    never do: an unknown tag name simply contributes no results.
    """

    def __init__(self, tag_name: str) -> None:
        """
        Initialize TagNotFoundError.

        Parameters
        ----------
        tag_name : str
            The tag name that could not be found.
        """
        self.tag_name = tag_name
        super().__init__(f"Tag '{tag_name}' not found")
