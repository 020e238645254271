"""Public SDK surface for jsonstash.

This module provides a stable import path for library users.
It re-exports the storage handles, typed results and errors, and builds
handles from runtime configuration.
"""

from __future__ import annotations

from pathlib import Path

from core.config import StashConfig
from core.errors import (
    InvalidBulkInputError,
    InvalidChildKindError,
    InvalidKeyError,
    JsonStashConfigError,
    JsonStashError,
    NotInitializedError,
    StorageIOError,
)
from core.logging_config import configure_logging
from core.types import DeleteResult, FindResult
from store.events import EventBus
from store.keys import is_valid_key, normalize_key
from store.namespace import Namespace
from store.record_collection import RecordCollection

__all__ = [
    "DeleteResult",
    "EventBus",
    "FindResult",
    "InvalidBulkInputError",
    "InvalidChildKindError",
    "InvalidKeyError",
    "JsonStashConfigError",
    "JsonStashError",
    "Namespace",
    "NotInitializedError",
    "RecordCollection",
    "StashConfig",
    "StorageIOError",
    "is_valid_key",
    "normalize_key",
    "open_collection",
    "open_namespace",
]


def open_namespace(
    config: StashConfig | None = None,
    events: EventBus | None = None,
) -> Namespace:
    """Open the root namespace at the configured data root.

    Args:
        config: Optional runtime configuration; read from env when omitted.
        events: Optional notification bus for the root namespace.

    Returns:
        Root namespace handle.
    """
    resolved = config or StashConfig.from_env()
    configure_logging(resolved.log_level)
    return Namespace(resolved.data_root, events=events, emit_events=resolved.emit_events)


def open_collection(
    folder: Path | str,
    config: StashConfig | None = None,
    events: EventBus | None = None,
) -> RecordCollection:
    """Open a standalone record collection outside any namespace.

    Args:
        folder: Collection root folder; relative paths resolve under the data root.
        config: Optional runtime configuration; read from env when omitted.
        events: Optional notification bus for the collection.

    Returns:
        Collection handle.
    """
    resolved = config or StashConfig.from_env()
    configure_logging(resolved.log_level)
    return RecordCollection(
        resolved.data_root / Path(folder),
        events=events,
        emit_events=resolved.emit_events,
    )
