"""Record collection storage.

A collection owns one folder holding one JSON file per record under
``.file/`` plus a ``_m_.json`` index of keys, index entries and a total.
The index is loaded once and rewritten wholesale on every membership change.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import time
from typing import Any, Mapping

from core.constants import (
    COLLECTION_INDEX_FILE_NAME,
    CREATED_AT_FIELD,
    DEFAULT_INDEX_ID_FIELD,
    EVENT_DELETED,
    EVENT_MISSED,
    EVENT_SET,
    RECORD_FILE_SUFFIX,
    RECORDS_DIR_NAME,
    UPDATED_AT_FIELD,
)
from core.errors import (
    InvalidBulkInputError,
    JsonStashError,
    NotInitializedError,
    StorageIOError,
)
from core.logging_config import get_logger
from core.types import DeleteResult, FindResult, IndexEntry, IndexPredicate, Record
from store.events import EventBus, report_error
from store.json_io import (
    ensure_folder,
    read_json_object,
    remove_file,
    write_json_atomic,
)
from store.keys import normalize_key

_LOGGER = get_logger(__name__)


class RecordCollection:
    """Keyed JSON record collection backed by one folder.

    Every public method normalizes its key first; an invalid key raises
    InvalidKeyError whatever the event mode. Other failures are emitted as
    ``error`` notifications when events are enabled, raised otherwise.
    """

    def __init__(
        self,
        folder: Path | str,
        *,
        events: EventBus | None = None,
        emit_events: bool = True,
    ) -> None:
        """Open or bootstrap a collection folder.

        Args:
            folder: Collection root folder.
            events: Notification bus; a private one is created when omitted.
            emit_events: Default event mode for calls that do not override it.
        """
        self._folder = Path(folder)
        self._records_folder = self._folder / RECORDS_DIR_NAME
        self._index_path = self._folder / COLLECTION_INDEX_FILE_NAME
        self._events = events or EventBus()
        self._emit_events = emit_events
        self._meta: dict[str, Any] | None = None
        self._is_new = False
        self._load_index()

    @property
    def folder(self) -> Path:
        return self._folder

    @property
    def records_folder(self) -> Path:
        return self._records_folder

    @property
    def index_path(self) -> Path:
        return self._index_path

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def is_new(self) -> bool:
        """Whether the index file was bootstrapped by this instance."""
        return self._is_new

    @property
    def is_initialized(self) -> bool:
        """Whether the index loaded; operations fail with NotInitializedError otherwise."""
        return self._meta is not None

    def exists(self, key: str, *, emit_events: bool | None = None) -> bool:
        """Return whether a key is present in the index.

        Args:
            key: Raw record key.
            emit_events: Emit ``missed`` on absence and report failures.

        Returns:
            True when the normalized key is indexed.
        """
        normalized = normalize_key(key)
        emit = self._resolve_emit(emit_events)
        try:
            self._require_meta()
        except JsonStashError as error:
            report_error(self._events, error, emit, method="exists", key=normalized)
            return False
        found = self._is_indexed(normalized)
        if not found and emit:
            self._events.emit(EVENT_MISSED, normalized)
        return found

    def get(
        self,
        key: str,
        *,
        emit_events: bool | None = None,
        housekeep: bool = False,
    ) -> Record | None:
        """Load a record by key.

        Args:
            key: Raw record key.
            emit_events: Emit ``missed``/``error`` instead of raising.
            housekeep: Remove a record file that the index no longer references.

        Returns:
            Record content, or None when absent.
        """
        normalized = normalize_key(key)
        emit = self._resolve_emit(emit_events)
        try:
            self._require_meta()
            file_path = self._record_path(normalized)
            if self._is_indexed(normalized):
                return read_json_object(file_path)
            if emit:
                self._events.emit(EVENT_MISSED, normalized)
            if housekeep and remove_file(file_path):
                _LOGGER.warning(
                    "orphan_record_removed",
                    folder=str(self._folder),
                    key=normalized,
                )
        except JsonStashError as error:
            report_error(self._events, error, emit, method="get", key=normalized)
        return None

    def get_index_entry(self, key: str) -> IndexEntry | None:
        """Return the stored index entry for a key without loading the record."""
        normalized = normalize_key(key)
        if self._meta is None or not self._is_indexed(normalized):
            return None
        return dict(self._meta["data"][normalized])

    def set(
        self,
        key: str,
        value: Mapping[str, Any] | None = None,
        index_entry: Mapping[str, Any] | None = None,
        *,
        replace: bool = True,
        emit_events: bool | None = None,
        persist_index: bool = True,
    ) -> None:
        """Create or update one record.

        Args:
            key: Raw record key.
            value: Record fields.
            index_entry: Index entry; defaults to ``{"id": key}`` on creation and
                leaves the stored entry untouched on update when omitted.
            replace: Replace the stored fields instead of shallow-merging over them.
            emit_events: Emit ``set``/``error`` instead of raising.
            persist_index: Rewrite the index file now; bulk writers defer it.
        """
        normalized = normalize_key(key)
        emit = self._resolve_emit(emit_events)
        payload = dict(value or {})
        try:
            meta = self._require_meta()
            is_new = not self._is_indexed(normalized)
            file_path = self._record_path(normalized)
            previous = None if is_new else read_json_object(file_path)
            write_json_atomic(file_path, _build_record(payload, previous, replace))
            if is_new:
                meta["data"][normalized] = (
                    dict(index_entry)
                    if index_entry is not None
                    else {DEFAULT_INDEX_ID_FIELD: normalized}
                )
                meta["total"] += 1
            elif index_entry is not None:
                meta["data"][normalized] = dict(index_entry)
            if persist_index and (is_new or index_entry is not None):
                self._persist_index()
            _LOGGER.debug(
                "record_set",
                folder=str(self._folder),
                key=normalized,
                created=is_new,
                replace=replace,
            )
            if emit:
                self._events.emit(EVENT_SET, normalized, payload, index_entry, previous)
        except JsonStashError as error:
            report_error(
                self._events,
                error,
                emit,
                method="set",
                key=normalized,
                value=payload,
                index_entry=index_entry,
            )

    def delete(
        self,
        key: str,
        *,
        emit_events: bool | None = None,
        delete_file: bool = True,
    ) -> DeleteResult | None:
        """Delete a record and its index entry.

        Deleting an absent key is a no-op that still reports a delete.

        Args:
            key: Raw record key.
            emit_events: Emit ``deleted``/``error`` instead of raising.
            delete_file: Also remove the record file, even when unindexed.

        Returns:
            Delete outcome, or None when a reported failure stopped the call.
        """
        normalized = normalize_key(key)
        emit = self._resolve_emit(emit_events)
        try:
            meta = self._require_meta()
            if self._is_indexed(normalized):
                del meta["data"][normalized]
                meta["total"] -= 1
                self._persist_index()
            record = None
            file_path = self._record_path(normalized)
            if delete_file and file_path.exists():
                record = self._read_doomed_record(file_path)
                remove_file(file_path)
            _LOGGER.debug(
                "record_deleted",
                folder=str(self._folder),
                key=normalized,
                file_removed=delete_file,
            )
            if emit:
                self._events.emit(EVENT_DELETED, normalized, record)
            return DeleteResult(key=normalized, record=record)
        except JsonStashError as error:
            report_error(self._events, error, emit, method="delete", key=normalized)
        return None

    def find(
        self,
        predicate: IndexPredicate,
        *,
        load_record: bool = True,
        emit_events: bool | None = None,
    ) -> FindResult | None:
        """Return the first record whose index entry satisfies a predicate.

        Args:
            predicate: Callable over the index entry.
            load_record: Load the full record for the match.
            emit_events: Emit ``error`` instead of raising.

        Returns:
            First match in index order, or None.
        """
        emit = self._resolve_emit(emit_events)
        try:
            meta = self._require_meta()
            for key, entry in meta["data"].items():
                if not predicate(entry):
                    continue
                record = read_json_object(self._record_path(key)) if load_record else None
                return FindResult(key=key, record=record, index_entry=dict(entry))
        except JsonStashError as error:
            report_error(self._events, error, emit, method="find")
        return None

    def find_all(
        self,
        predicate: IndexPredicate | None = None,
        *,
        offset: int = 0,
        limit: int = 0,
        emit_events: bool | None = None,
    ) -> list[FindResult]:
        """Return every loadable record whose index entry satisfies a predicate.

        Args:
            predicate: Callable over the index entry; all entries match when None.
            offset: Number of leading matches to skip.
            limit: Maximum number of results; 0 means unbounded.
            emit_events: Emit ``error`` instead of raising.

        Returns:
            Matches in index order. Entries whose record file is missing or
            unreadable are skipped and do not count toward ``limit``.
        """
        emit = self._resolve_emit(emit_events)
        offset = max(int(offset or 0), 0)
        limit = max(int(limit or 0), 0)
        results: list[FindResult] = []
        try:
            meta = self._require_meta()
        except JsonStashError as error:
            report_error(self._events, error, emit, method="find_all")
            return results
        matched = 0
        for key, entry in meta["data"].items():
            if predicate is not None and not predicate(entry):
                continue
            matched += 1
            if matched <= offset:
                continue
            record = self._load_for_scan(key)
            if record is None:
                continue
            results.append(FindResult(key=key, record=record, index_entry=dict(entry)))
            if limit and len(results) == limit:
                break
        return results

    def bulk_set(
        self,
        entries: Mapping[str, Mapping[str, Any]],
        *,
        replace: bool = True,
        emit_events: bool | None = None,
        persist_index: bool = True,
    ) -> None:
        """Apply many sets with a single index rewrite.

        Args:
            entries: Mapping of key to ``{"value": {...}, "index": {...}}``; a
                missing index becomes ``{"id": key}``.
            replace: Replace instead of merge for every entry.
            emit_events: Emit ``error`` instead of raising.
            persist_index: Rewrite the index once after the batch.
        """
        emit = self._resolve_emit(emit_events)
        applied = 0
        try:
            if not isinstance(entries, Mapping):
                raise InvalidBulkInputError(
                    f"Invalid bulk input: expected mapping of key to entry, "
                    f"got {type(entries).__name__}."
                )
            self._require_meta()
            try:
                for key, entry in entries.items():
                    if not isinstance(entry, Mapping):
                        raise InvalidBulkInputError(
                            f"Invalid bulk entry for key {key!r}: expected mapping with "
                            "'value' and optional 'index'."
                        )
                    index_entry = entry.get("index") or {DEFAULT_INDEX_ID_FIELD: normalize_key(key)}
                    self.set(
                        key,
                        entry.get("value") or {},
                        index_entry,
                        replace=replace,
                        emit_events=False,
                        persist_index=False,
                    )
                    applied += 1
            finally:
                if persist_index and applied:
                    self._persist_index()
            _LOGGER.debug("bulk_set_applied", folder=str(self._folder), count=applied)
        except JsonStashError as error:
            report_error(
                self._events,
                error,
                emit,
                method="bulk_set",
                entries=entries,
                applied=applied,
            )

    def delete_all(self, *, real: bool = True, emit_events: bool | None = None) -> None:
        """Delete every record.

        Args:
            real: Delete each record file and index entry; when False only the
                index is reset, in one rewrite, and record files stay on disk.
            emit_events: Emit ``deleted``/``error`` instead of raising.
        """
        emit = self._resolve_emit(emit_events)
        try:
            meta = self._require_meta()
            if real:
                for key in list(meta["data"]):
                    self.delete(key, emit_events=emit)
            else:
                self._meta = _empty_index()
                self._persist_index()
            _LOGGER.info("collection_cleared", folder=str(self._folder), real=real)
        except JsonStashError as error:
            report_error(self._events, error, emit, method="delete_all", real=real)

    def flush_index(self) -> None:
        """Persist the in-memory index, for callers that deferred it.

        Raises:
            NotInitializedError: If the index failed to load.
            StorageIOError: If the index cannot be written.
        """
        self._persist_index()

    def count(self) -> int:
        return int(self._meta["total"]) if self._meta else 0

    def keys(self) -> list[str]:
        return list(self._meta["data"]) if self._meta else []

    def version(self) -> str:
        """Return the timestamp of the last index write."""
        if self._meta and self._meta.get("version"):
            return str(self._meta["version"])
        return _iso_now()

    def _load_index(self) -> None:
        try:
            ensure_folder(self._records_folder)
            meta = read_json_object(self._index_path)
            if meta is None:
                self._meta = _empty_index()
                self._is_new = True
                self._persist_index()
                _LOGGER.debug("collection_created", folder=str(self._folder))
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
        meta = self._require_meta()
        meta["version"] = _iso_now()
        write_json_atomic(self._index_path, meta)
        _LOGGER.debug("index_persisted", folder=str(self._folder), total=meta["total"])

    def _require_meta(self) -> dict[str, Any]:
        if self._meta is None:
            raise NotInitializedError(
                f"Collection at {self._folder} is not initialized: its index failed to load. "
                f"Repair or remove {self._index_path} and reopen the collection."
            )
        return self._meta

    def _is_indexed(self, normalized: str) -> bool:
        meta = self._meta
        return meta is not None and meta["total"] > 0 and normalized in meta["data"]

    def _record_path(self, normalized: str) -> Path:
        return self._records_folder / f"{normalized}{RECORD_FILE_SUFFIX}"

    def _resolve_emit(self, emit_events: bool | None) -> bool:
        return self._emit_events if emit_events is None else emit_events

    def _read_doomed_record(self, file_path: Path) -> Record | None:
        try:
            return read_json_object(file_path)
        except StorageIOError as error:
            _LOGGER.warning("unreadable_record_removed", path=str(file_path), error=str(error))
            return None

    def _load_for_scan(self, key: str) -> Record | None:
        try:
            return read_json_object(self._record_path(key))
        except StorageIOError as error:
            _LOGGER.warning("unreadable_record_skipped", key=key, error=str(error))
            return None


def _build_record(
    payload: dict[str, Any],
    previous: Record | None,
    replace: bool,
) -> Record:
    """Compose the record to write from new fields and the stored record.

    Args:
        payload: Caller fields.
        previous: Stored record, or None on creation.
        replace: Drop previous caller fields instead of merging over them.

    Returns:
        Record with ``createdAt`` preserved and ``updatedAt`` advanced.
    """
    now = _now_millis()
    if previous is None:
        created_at = updated_at = now
        base: dict[str, Any] = {}
    else:
        # updatedAt must advance even for two writes inside one millisecond.
        updated_at = max(now, _as_millis(previous.get(UPDATED_AT_FIELD)) + 1)
        created_at = previous.get(CREATED_AT_FIELD, updated_at)
        base = {} if replace else dict(previous)
    record: Record = {CREATED_AT_FIELD: created_at, **base, **payload}
    record[CREATED_AT_FIELD] = created_at
    record[UPDATED_AT_FIELD] = updated_at
    return record


def _validate_index(meta: dict[str, Any], index_path: Path) -> dict[str, Any]:
    data = meta.get("data")
    total = meta.get("total")
    if not isinstance(data, dict) or not isinstance(total, int):
        raise StorageIOError(
            f"Malformed collection index at {index_path}: expected 'total' integer "
            "and 'data' object. Repair or remove the index file."
        )
    return meta


def _empty_index() -> dict[str, Any]:
    return {"version": _iso_now(), "total": 0, "data": {}}


def _as_millis(value: object) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
