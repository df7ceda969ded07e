"""
Tag list value model.

A ``TagList`` is the in-memory, user-editable form of an entity's tags: an
ordered sequence of normalized names with no duplicates.  It parses and
serializes a comma-delimited text representation in which a name containing
the delimiter (or a double quote) is wrapped in double quotes, with embedded
double quotes doubled::

    >>> str(TagList.from_string('python, "web, backend",  sql'))
    'python, "web, backend", sql'

Normalization is defined here rather than delegated to database collation:

- display form: surrounding whitespace trimmed, internal whitespace runs
  collapsed to a single space;
- identity key: the display form case-folded.

Two names with the same identity key are the same tag; the first spelling
seen wins.
"""

from __future__ import annotations

import csv
import re
from typing import Any, Iterable, Iterator, Optional, Union

DEFAULT_DELIMITER = ","

_WHITESPACE_RUN = re.compile(r"\s+")

TagListInput = Union[None, str, "TagList", Iterable[Any]]


def normalize_tag_name(name: str) -> str:
    """
    Return the display form of *name*.

    Parameters
    ----------
    name : str
        Raw tag name.

    Returns
    -------
    str
        The name trimmed with internal whitespace collapsed; empty when the
        input holds no visible characters.

    Examples
    --------
    >>> normalize_tag_name("  Very \\t good ")
    'Very good'
    """
    return _WHITESPACE_RUN.sub(" ", name).strip()


def tag_key(name: str) -> str:
    """
    Return the identity key used to compare tag names.

    Examples
    --------
    >>> tag_key(" Very GOOD")
    'very good'
    """
    return normalize_tag_name(name).casefold()


def _split(text: str, delimiter: str) -> list[str]:
    """Split *text* on *delimiter*, honouring double-quoted segments."""
    # Line breaks carry no meaning in the format; they would end a csv record
    flattened = text.replace("\r", " ").replace("\n", " ")
    reader = csv.reader([flattened], delimiter=delimiter, skipinitialspace=True)
    return [token for row in reader for token in row]


def _quote(name: str, delimiter: str) -> str:
    if delimiter in name or '"' in name:
        return '"' + name.replace('"', '""') + '"'
    return name


class TagList:
    """
    Ordered, duplicate-free list of tag names.

    Membership, equality and set difference use the identity key
    (case-insensitive, whitespace-normalized); iteration and serialization
    keep insertion order and the first spelling of each name.

    Examples
    --------
    >>> tags = TagList("Python", "python ", "SQL")
    >>> list(tags)
    ['Python', 'SQL']
    >>> "PYTHON" in tags
    True
    >>> tags == TagList("sql", "python")
    True
    """

    def __init__(
        self, *names: str, parse: bool = False, delimiter: str = DEFAULT_DELIMITER
    ) -> None:
        self.delimiter = delimiter
        self._names: list[str] = []
        self._keys: set[str] = set()
        self.add(*names, parse=parse)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_string(
        cls, text: Optional[str], delimiter: str = DEFAULT_DELIMITER
    ) -> TagList:
        """
        Parse a delimited tag string.

        Empty or blank input yields an empty list, never an error.
        """
        tag_list = cls(delimiter=delimiter)
        if text:
            tag_list.add(*_split(text, delimiter))
        return tag_list

    @classmethod
    def from_value(
        cls, value: TagListInput, delimiter: str = DEFAULT_DELIMITER
    ) -> TagList:
        """
        Build a tag list from a string, another ``TagList`` or an iterable.

        Strings are parsed.  Items of an iterable are taken as individual
        names; objects exposing a ``name`` attribute (such as ``Tag`` rows)
        contribute that name.
        """
        if value is None:
            return cls(delimiter=delimiter)
        if isinstance(value, TagList):
            return value.copy()
        if isinstance(value, str):
            return cls.from_string(value, delimiter=delimiter)

        tag_list = cls(delimiter=delimiter)
        for item in value:
            name = getattr(item, "name", item)
            tag_list.add(str(name))
        return tag_list

    def copy(self) -> TagList:
        """Return an independent copy of this list."""
        return TagList(*self._names, delimiter=self.delimiter)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, *names: str, parse: bool = False) -> TagList:
        """
        Append names not already present.

        Parameters
        ----------
        *names : str
            Names to add.
        parse : bool, optional
            When True each argument is treated as a delimited string and
            split before adding (default False).

        Returns
        -------
        TagList
            ``self``, to allow chaining.
        """
        for name in self._expand(names, parse):
            display = normalize_tag_name(name)
            key = display.casefold()
            if display and key not in self._keys:
                self._names.append(display)
                self._keys.add(key)
        return self

    def remove(self, *names: str, parse: bool = False) -> TagList:
        """Remove names (compared by identity key); unknown names are ignored."""
        doomed = {tag_key(name) for name in self._expand(names, parse)}
        self._names = [name for name in self._names if name.casefold() not in doomed]
        self._keys -= doomed
        return self

    def clear(self) -> None:
        self._names.clear()
        self._keys.clear()

    def _expand(self, names: Iterable[str], parse: bool) -> list[str]:
        if not parse:
            return list(names)
        expanded: list[str] = []
        for name in names:
            expanded.extend(_split(name, self.delimiter))
        return expanded

    # ------------------------------------------------------------------
    # Set operations
    # ------------------------------------------------------------------

    def difference(self, other: TagListInput) -> TagList:
        """Return the names of this list that are absent from *other*."""
        other_keys = TagList.from_value(other).keys()
        return TagList(
            *(name for name in self._names if name.casefold() not in other_keys),
            delimiter=self.delimiter,
        )

    __sub__ = difference

    def keys(self) -> frozenset[str]:
        """Identity keys of every name in the list."""
        return frozenset(self._keys)

    @property
    def names(self) -> list[str]:
        return list(self._names)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_string(self) -> str:
        """Serialize to the delimited text form (``""`` for an empty list)."""
        separator = f"{self.delimiter} "
        return separator.join(_quote(name, self.delimiter) for name in self._names)

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"TagList({self._names!r})"

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            name = getattr(name, "name", None)
            if not isinstance(name, str):
                return False
        return tag_key(name) in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._names))

    def __len__(self) -> int:
        return len(self._names)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TagList):
            return self._keys == other._keys
        if isinstance(other, (list, tuple, set, frozenset)):
            return self._keys == TagList.from_value(other).keys()
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]
