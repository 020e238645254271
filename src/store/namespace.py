"""Hierarchical namespace storage.

A namespace owns a ``.model/`` folder of child record collections, a
``.schema/`` folder of child namespaces and one ``_s_.json`` index that
tracks both child sets with the same total/data bookkeeping as a collection.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, cast

from core.constants import (
    CHILD_KIND_MODEL,
    CHILD_KIND_SCHEMA,
    CHILD_KINDS,
    DEFAULT_INDEX_ID_FIELD,
    EVENT_DELETED,
    EVENT_ERROR,
    MODELS_DIR_NAME,
    NAMESPACE_INDEX_FILE_NAME,
    SCHEMAS_DIR_NAME,
)
from core.errors import InvalidChildKindError, JsonStashError, NotInitializedError, StorageIOError
from core.logging_config import get_logger
from core.types import ChildKind, IndexEntry
from store.events import EventBus, report_error
from store.json_io import ensure_folder, read_json_object, remove_tree, write_json_atomic
from store.keys import normalize_key
from store.record_collection import RecordCollection

_LOGGER = get_logger(__name__)


class Namespace:
    """Named container of child collections and child namespaces.

    The namespace owns every child handle it opens; a child is never shared
    with another parent and its handle is dropped when the child is removed.
    """

    def __init__(
        self,
        folder: Path | str,
        *,
        events: EventBus | None = None,
        emit_events: bool = True,
    ) -> None:
        """Open or bootstrap a namespace folder.

        Args:
            folder: Namespace root folder.
            events: Notification bus; a private one is created when omitted.
            emit_events: Default event mode for this namespace and its children.
        """
        self._folder = Path(folder)
        self._models_folder = self._folder / MODELS_DIR_NAME
        self._schemas_folder = self._folder / SCHEMAS_DIR_NAME
        self._index_path = self._folder / NAMESPACE_INDEX_FILE_NAME
        self._events = events or EventBus()
        self._emit_events = emit_events
        self._meta: dict[str, Any] | None = None
        self._is_new = False
        self._children: dict[tuple[str, str], RecordCollection | Namespace] = {}
        self._load_index()

    @property
    def folder(self) -> Path:
        return self._folder

    @property
    def models_folder(self) -> Path:
        return self._models_folder

    @property
    def schemas_folder(self) -> Path:
        return self._schemas_folder

    @property
    def index_path(self) -> Path:
        return self._index_path

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def is_new(self) -> bool:
        return self._is_new

    @property
    def is_initialized(self) -> bool:
        return self._meta is not None

    def count(self, kind: ChildKind, *, emit_events: bool | None = None) -> int:
        """Return the number of indexed children of one kind."""
        emit = self._resolve_emit(emit_events)
        try:
            return int(self._section(kind)["total"])
        except JsonStashError as error:
            report_error(self._events, error, emit, method="count", kind=kind)
        return 0

    def keys(self, kind: ChildKind, *, emit_events: bool | None = None) -> list[str]:
        """Return the indexed child names of one kind."""
        emit = self._resolve_emit(emit_events)
        try:
            return list(self._section(kind)["data"])
        except JsonStashError as error:
            report_error(self._events, error, emit, method="keys", kind=kind)
        return []

    def has(self, kind: ChildKind, name: str, *, emit_events: bool | None = None) -> bool:
        """Return whether a child of one kind is indexed."""
        key = normalize_key(name)
        emit = self._resolve_emit(emit_events)
        try:
            return key in self._section(kind)["data"]
        except JsonStashError as error:
            report_error(self._events, error, emit, method="has", kind=kind, name=name)
        return False

    def get_meta(
        self,
        kind: ChildKind,
        name: str,
        *,
        emit_events: bool | None = None,
    ) -> IndexEntry | None:
        """Return the index entry stored for a child, or None."""
        key = normalize_key(name)
        emit = self._resolve_emit(emit_events)
        try:
            entry = self._section(kind)["data"].get(key)
            return dict(entry) if entry is not None else None
        except JsonStashError as error:
            report_error(self._events, error, emit, method="get", kind=kind, name=name)
        return None

    def remove(self, kind: ChildKind, name: str, *, emit_events: bool | None = None) -> None:
        """Remove a child, its index entry and its whole folder subtree.

        Args:
            kind: ``"model"`` or ``"schema"``.
            name: Raw child name.
            emit_events: Emit ``deleted``/``error`` instead of raising.
        """
        key = normalize_key(name)
        emit = self._resolve_emit(emit_events)
        try:
            kind = _normalize_kind(kind)
            section = self._section(kind)
            if key not in section["data"]:
                return
            del section["data"][key]
            section["total"] -= 1
            self._persist_index()
            self._children.pop((kind, key), None)
            remove_tree(self._child_folder(kind, key))
            _LOGGER.info("child_removed", folder=str(self._folder), kind=kind, name=key)
            if emit:
                self._events.emit(EVENT_DELETED, key, kind)
        except JsonStashError as error:
            report_error(self._events, error, emit, method="remove", kind=kind, name=name)

    def open_model(
        self,
        name: str,
        index_entry: Mapping[str, Any] | None = None,
    ) -> RecordCollection:
        """Create or load a child record collection.

        Args:
            name: Raw model name.
            index_entry: Entry stored in this namespace's index for the model;
                defaults to ``{"id": name}`` on creation.

        Returns:
            Collection rooted at ``.model/<name>``.

        Raises:
            InvalidKeyError: If the name is invalid.
            JsonStashError: If the child or this index cannot be initialized.
        """
        key = normalize_key(name)
        child = self._children.get((CHILD_KIND_MODEL, key))
        if child is None:
            child = RecordCollection(
                self._child_folder(CHILD_KIND_MODEL, key),
                events=self._child_events(CHILD_KIND_MODEL, key),
                emit_events=self._emit_events,
            )
            self._children[(CHILD_KIND_MODEL, key)] = child
        self._register_child(CHILD_KIND_MODEL, key, child, index_entry)
        return cast(RecordCollection, child)

    def open_schema(
        self,
        name: str,
        index_entry: Mapping[str, Any] | None = None,
    ) -> "Namespace":
        """Create or load a child namespace.

        Args:
            name: Raw schema name.
            index_entry: Entry stored in this namespace's index for the schema.

        Returns:
            Namespace rooted at ``.schema/<name>``.

        Raises:
            InvalidKeyError: If the name is invalid.
            JsonStashError: If the child or this index cannot be initialized.
        """
        key = normalize_key(name)
        child = self._children.get((CHILD_KIND_SCHEMA, key))
        if child is None:
            child = Namespace(
                self._child_folder(CHILD_KIND_SCHEMA, key),
                events=self._child_events(CHILD_KIND_SCHEMA, key),
                emit_events=self._emit_events,
            )
            self._children[(CHILD_KIND_SCHEMA, key)] = child
        self._register_child(CHILD_KIND_SCHEMA, key, child, index_entry)
        return cast(Namespace, child)

    def model_count(self, *, emit_events: bool | None = None) -> int:
        return self.count(CHILD_KIND_MODEL, emit_events=emit_events)

    def schema_count(self, *, emit_events: bool | None = None) -> int:
        return self.count(CHILD_KIND_SCHEMA, emit_events=emit_events)

    def model_keys(self, *, emit_events: bool | None = None) -> list[str]:
        return self.keys(CHILD_KIND_MODEL, emit_events=emit_events)

    def schema_keys(self, *, emit_events: bool | None = None) -> list[str]:
        return self.keys(CHILD_KIND_SCHEMA, emit_events=emit_events)

    def has_model(self, name: str, *, emit_events: bool | None = None) -> bool:
        return self.has(CHILD_KIND_MODEL, name, emit_events=emit_events)

    def has_schema(self, name: str, *, emit_events: bool | None = None) -> bool:
        return self.has(CHILD_KIND_SCHEMA, name, emit_events=emit_events)

    def get_model_meta(self, name: str, *, emit_events: bool | None = None) -> IndexEntry | None:
        return self.get_meta(CHILD_KIND_MODEL, name, emit_events=emit_events)

    def get_schema_meta(self, name: str, *, emit_events: bool | None = None) -> IndexEntry | None:
        return self.get_meta(CHILD_KIND_SCHEMA, name, emit_events=emit_events)

    def remove_model(self, name: str, *, emit_events: bool | None = None) -> None:
        self.remove(CHILD_KIND_MODEL, name, emit_events=emit_events)

    def remove_schema(self, name: str, *, emit_events: bool | None = None) -> None:
        self.remove(CHILD_KIND_SCHEMA, name, emit_events=emit_events)

    def _register_child(
        self,
        kind: ChildKind,
        key: str,
        child: RecordCollection | Namespace,
        index_entry: Mapping[str, Any] | None,
    ) -> None:
        """Index a freshly opened child or refresh its stored entry.

        Raises:
            NotInitializedError: If the child index failed to load.
            JsonStashError: If this namespace is uninitialized or the index
                cannot be written.
        """
        if not child.is_initialized:
            self._children.pop((kind, key), None)
            raise NotInitializedError(
                f"Cannot open {kind} '{key}' under {self._folder}: its index failed to load. "
                f"Repair or remove {child.index_path}."
            )
        section = self._section(kind)
        if key not in section["data"]:
            section["data"][key] = (
                dict(index_entry) if index_entry is not None else {DEFAULT_INDEX_ID_FIELD: key}
            )
            section["total"] += 1
            self._persist_index()
            _LOGGER.info(
                "child_indexed",
                folder=str(self._folder),
                kind=kind,
                name=key,
                created=child.is_new,
            )
        elif index_entry is not None:
            section["data"][key] = dict(index_entry)
            self._persist_index()

    def _child_events(self, kind: ChildKind, key: str) -> EventBus:
        events = EventBus()

        def _log_child_error(error: JsonStashError, context: dict[str, object]) -> None:
            _LOGGER.debug(
                "child_operation_failed",
                folder=str(self._folder),
                kind=kind,
                name=key,
                method=context.get("method"),
                error=str(error),
            )

        events.on(EVENT_ERROR, _log_child_error)
        return events

    def _child_folder(self, kind: ChildKind, key: str) -> Path:
        parent = self._models_folder if kind == CHILD_KIND_MODEL else self._schemas_folder
        return parent / key

    def _section(self, kind: str) -> dict[str, Any]:
        if self._meta is None:
            raise NotInitializedError(
                f"Namespace at {self._folder} is not initialized: its index failed to load. "
                f"Repair or remove {self._index_path} and reopen the namespace."
            )
        return cast(dict[str, Any], self._meta[f"{_normalize_kind(kind)}s"])

    def _load_index(self) -> None:
        try:
            ensure_folder(self._models_folder)
            ensure_folder(self._schemas_folder)
            meta = read_json_object(self._index_path)
            if meta is None:
                self._meta = _empty_index()
                self._is_new = True
                self._persist_index()
                _LOGGER.debug("namespace_created", folder=str(self._folder))
            else:
                self._meta = _validate_index(meta, self._index_path)
        except JsonStashError as error:
            self._meta = None
            report_error(
                self._events,
                error,
                self._emit_events,
                method="init",
                folder=str(self._folder),
            )

    def _persist_index(self) -> None:
        if self._meta is None:
            raise NotInitializedError(f"Namespace at {self._folder} is not initialized.")
        write_json_atomic(self._index_path, self._meta)
        _LOGGER.debug("namespace_index_persisted", folder=str(self._folder))

    def _resolve_emit(self, emit_events: bool | None) -> bool:
        return self._emit_events if emit_events is None else emit_events


def _normalize_kind(kind: object) -> ChildKind:
    normalized = kind.strip().lower() if isinstance(kind, str) else kind
    if normalized not in CHILD_KINDS:
        raise InvalidChildKindError(
            f"Invalid child kind: {kind!r}. Use one of {', '.join(CHILD_KINDS)}."
        )
    return cast(ChildKind, normalized)


def _validate_index(meta: dict[str, Any], index_path: Path) -> dict[str, Any]:
    for kind in CHILD_KINDS:
        section = meta.get(f"{kind}s")
        if (
            not isinstance(section, dict)
            or not isinstance(section.get("data"), dict)
            or not isinstance(section.get("total"), int)
        ):
            raise StorageIOError(
                f"Malformed namespace index at {index_path}: expected '{kind}s' with "
                "'total' integer and 'data' object. Repair or remove the index file."
            )
    return meta


def _empty_index() -> dict[str, Any]:
    return {
        "models": {"total": 0, "data": {}},
        "schemas": {"total": 0, "data": {}},
    }
