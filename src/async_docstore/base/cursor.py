# src/async_docstore/base/cursor.py

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple, Union

from pymongo import ASCENDING, DESCENDING

log = logging.getLogger(__name__)

SortSpec = Union[str, List[str], Tuple[str, ...]]
SortKeys = List[Tuple[str, int]]


def parse_sort(sort: Any) -> SortKeys:
    """
    Translate a sort description into (field, direction) pairs.

    A field prefixed with '-' sorts descending, otherwise ascending. A bare
    string is treated as a single field. Entries that are not strings, and
    empty field names, are ignored.

    Examples:
        >>> parse_sort("-age")
        [('age', -1)]
        >>> parse_sort(["name", "-age", 3])
        [('name', 1), ('age', -1)]
    """
    if isinstance(sort, str):
        sort = [sort]
    elif not isinstance(sort, (list, tuple)):
        if sort is not None:
            log.debug(f"Ignoring unsupported sort value: {sort!r}")
        return []

    keys: SortKeys = []
    for entry in sort:
        if not isinstance(entry, str):
            continue
        direction = ASCENDING
        if entry.startswith("-"):
            direction = DESCENDING
            entry = entry[1:]
        if entry:
            keys.append((entry, direction))
    return keys


def _as_count(name: str, value: Any) -> Optional[int]:
    # bool is an int subclass but never a meaningful count
    if isinstance(value, bool) or not isinstance(value, int):
        if value is not None:
            log.debug(f"Ignoring non-integer {name}: {value!r}")
        return None
    if value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value}")
    return value


@dataclass
class FindOptions:
    """Cursor options for `find`: applied as sort, then skip, then limit."""

    sort: SortKeys = field(default_factory=list)
    skip: Optional[int] = None
    limit: Optional[int] = None  # 0 means no limit

    def __post_init__(self):
        if isinstance(self.sort, str) or any(isinstance(s, str) for s in self.sort):
            self.sort = parse_sort(self.sort)
        for name in ("skip", "limit"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value}")

    @classmethod
    def from_value(
        cls, options: Union["FindOptions", Mapping[str, Any], None]
    ) -> "FindOptions":
        """Build FindOptions from None, an existing instance, or a mapping."""
        if options is None:
            return cls()
        if isinstance(options, FindOptions):
            return options.copy()
        if not isinstance(options, Mapping):
            raise TypeError(
                f"options must be a FindOptions or a mapping, got {type(options).__name__}"
            )
        return cls(
            sort=parse_sort(options.get("sort")),
            skip=_as_count("skip", options.get("skip")),
            limit=_as_count("limit", options.get("limit")),
        )

    def copy(self) -> "FindOptions":
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        parts = []
        if self.sort:
            parts.append(f"sort={self.sort!r}")
        if self.skip is not None:
            parts.append(f"skip={self.skip!r}")
        if self.limit is not None:
            parts.append(f"limit={self.limit!r}")
        return f"FindOptions({', '.join(parts)})"
