"""Shared typed models.

This module defines the result types and callable aliases used by the
record collection, the namespace and the SDK surface.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal, Mapping

ChildKind = Literal["model", "schema"]
IndexEntry = dict[str, Any]
Record = dict[str, Any]
IndexPredicate = Callable[[Mapping[str, Any]], bool]
EventListener = Callable[..., object]


@dataclass(frozen=True)
class FindResult:
    """One predicate match from an index scan.

    Attributes:
        key: Normalized record key.
        record: Loaded record, or None when loading was skipped or the file is gone.
        index_entry: Index entry the predicate matched.
    """

    key: str
    record: Record | None
    index_entry: IndexEntry


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a record delete.

    Attributes:
        key: Normalized record key.
        record: Removed record content, or None when no file was removed.
    """

    key: str
    record: Record | None = None
