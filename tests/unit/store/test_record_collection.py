"""Unit tests for record collection storage."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from core.errors import (
    InvalidBulkInputError,
    InvalidKeyError,
    NotInitializedError,
    StorageIOError,
)
from core.types import DeleteResult
from store import record_collection as record_collection_module
from store.events import EventBus
from store.record_collection import RecordCollection


def _record_file(collection: RecordCollection, key: str) -> Path:
    return collection.records_folder / f"{key}.json"


def _capture(bus: EventBus, event: str) -> list[tuple[Any, ...]]:
    received: list[tuple[Any, ...]] = []
    bus.on(event, lambda *args: received.append(args))
    return received


def test_constructor_bootstraps_index_file(tmp_path: Path) -> None:
    """A fresh folder should get an empty index and report itself as new."""
    collection = RecordCollection(tmp_path / "users")

    index = json.loads(collection.index_path.read_text(encoding="utf-8"))

    assert collection.is_new and set(index) == {"version", "total", "data"}
    assert index["total"] == 0 and index["data"] == {}


def test_reopening_existing_folder_is_not_new(tmp_path: Path) -> None:
    """An existing index should load verbatim."""
    RecordCollection(tmp_path / "users").set("ada", {"name": "Ada"})

    reopened = RecordCollection(tmp_path / "users")

    assert not reopened.is_new and reopened.keys() == ["ada"]


def test_set_then_get_returns_fields_with_timestamps(tmp_path: Path) -> None:
    """A stored record should carry caller fields and engine timestamps."""
    collection = RecordCollection(tmp_path / "users")

    collection.set("ada", {"name": "Ada", "role": "admin"})
    record = collection.get("ada")

    assert record is not None and collection.exists("ada")
    assert record["name"] == "Ada" and record["role"] == "admin"
    assert record["createdAt"] == record["updatedAt"]


def test_key_normalization_addresses_same_record(tmp_path: Path) -> None:
    """Keys differing only by case or whitespace should share one record."""
    collection = RecordCollection(tmp_path / "users")

    collection.set("  Foo ", {"name": "foo"})

    assert collection.get("foo") == collection.get("FOO")
    assert collection.exists("FOO") and collection.keys() == ["foo"]
    assert _record_file(collection, "foo").exists()


def test_set_replace_mode_drops_previous_fields(tmp_path: Path) -> None:
    """Default replace mode should keep only the new fields."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"a": 1})

    collection.set("ada", {"b": 2})
    record = collection.get("ada")

    assert record is not None and "a" not in record and record["b"] == 2


def test_set_merge_mode_keeps_previous_fields_and_created_at(tmp_path: Path) -> None:
    """Merge mode should overlay new fields and advance updatedAt."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"a": 1})
    before = collection.get("ada")

    collection.set("ada", {"b": 2}, None, replace=False)
    after = collection.get("ada")

    assert before is not None and after is not None
    assert after["a"] == 1 and after["b"] == 2
    assert after["createdAt"] == before["createdAt"]
    assert after["updatedAt"] > before["updatedAt"]


def test_set_ignores_caller_created_at(tmp_path: Path) -> None:
    """createdAt is owned by the engine."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"name": "Ada"})
    created_at = collection.get("ada")["createdAt"]

    collection.set("ada", {"name": "Ada", "createdAt": 1})

    assert collection.get("ada")["createdAt"] == created_at


def test_set_index_entry_defaults_and_updates_only_when_supplied(tmp_path: Path) -> None:
    """Updates should keep the index entry unless a new one is passed."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"name": "Ada"})
    default_entry = collection.get_index_entry("ada")

    collection.set("ada", {"name": "Ada L."})
    kept_entry = collection.get_index_entry("ada")
    collection.set("ada", {"name": "Ada"}, {"role": "admin"})

    assert default_entry == {"id": "ada"} and kept_entry == {"id": "ada"}
    assert collection.get_index_entry("ada") == {"role": "admin"}


def test_set_emits_set_event_with_previous_record(tmp_path: Path) -> None:
    """The set notification should carry the previous record on update."""
    collection = RecordCollection(tmp_path / "users")
    received = _capture(collection.events, "set")
    collection.set("ada", {"v": 1})
    previous = collection.get("ada")

    collection.set("ada", {"v": 2}, {"id": "ada"})

    assert received[0] == ("ada", {"v": 1}, None, None)
    assert received[1] == ("ada", {"v": 2}, {"id": "ada"}, previous)


def test_count_matches_keys_after_mutations(tmp_path: Path) -> None:
    """count() should always equal the number of keys."""
    collection = RecordCollection(tmp_path / "users")
    for key in ("a", "b", "c"):
        collection.set(key, {"key": key})
    collection.set("b", {"key": "b2"})
    collection.delete("a")

    assert collection.count() == len(collection.keys()) == 2


def test_delete_round_trip_restores_count_and_removes_file(tmp_path: Path) -> None:
    """set then delete should leave no trace."""
    collection = RecordCollection(tmp_path / "users")
    before = collection.count()
    collection.set("ada", {"name": "Ada"})

    result = collection.delete("ada")

    assert isinstance(result, DeleteResult) and result.record is not None
    assert result.record["name"] == "Ada"
    assert not collection.exists("ada") and collection.count() == before
    assert not _record_file(collection, "ada").exists()


def test_delete_absent_key_is_idempotent(tmp_path: Path) -> None:
    """Deleting an unknown key should still report a delete with no data."""
    collection = RecordCollection(tmp_path / "users")
    received = _capture(collection.events, "deleted")

    result = collection.delete("ghost")

    assert result == DeleteResult(key="ghost", record=None)
    assert received == [("ghost", None)]


def test_delete_without_file_removal_keeps_record_file(tmp_path: Path) -> None:
    """delete_file=False should only drop the index entry."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"name": "Ada"})

    collection.delete("ada", delete_file=False)

    assert not collection.exists("ada") and _record_file(collection, "ada").exists()


def test_delete_removes_unindexed_file(tmp_path: Path) -> None:
    """A file with no index entry should still be removed on delete."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"name": "Ada"})
    collection.delete_all(real=False)

    result = collection.delete("ada")

    assert result is not None and result.record is not None
    assert not _record_file(collection, "ada").exists()


def test_exists_emits_missed_unless_suppressed(tmp_path: Path) -> None:
    """Misses should be signalled only with events enabled."""
    collection = RecordCollection(tmp_path / "users")
    received = _capture(collection.events, "missed")

    collection.exists("ghost")
    collection.exists("phantom", emit_events=False)

    assert received == [("ghost",)]


def test_get_housekeep_removes_orphan_file(tmp_path: Path) -> None:
    """Housekeeping should delete files the index no longer references."""
    collection = RecordCollection(tmp_path / "users")
    orphan = _record_file(collection, "orphan")
    orphan.write_text('{"stale": true}', encoding="utf-8")

    plain = collection.get("orphan")
    still_there = orphan.exists()
    housekept = collection.get("orphan", housekeep=True)

    assert plain is None and housekept is None
    assert still_there and not orphan.exists()


@pytest.mark.parametrize("bad_key", ["", "_m_", "model", "has space", "semi;colon"])
def test_invalid_keys_raise_on_every_operation(tmp_path: Path, bad_key: str) -> None:
    """Invalid keys should raise even with events enabled."""
    collection = RecordCollection(tmp_path / "users")
    operations = [
        lambda: collection.exists(bad_key),
        lambda: collection.get(bad_key),
        lambda: collection.set(bad_key, {"x": 1}),
        lambda: collection.delete(bad_key),
        lambda: collection.get_index_entry(bad_key),
    ]

    for operation in operations:
        with pytest.raises(InvalidKeyError):
            operation()

    assert collection.count() == 0


def test_find_returns_first_match_and_short_circuits(tmp_path: Path) -> None:
    """find should stop scanning at the first matching index entry."""
    collection = RecordCollection(tmp_path / "users")
    for key, role in (("a", "dev"), ("b", "admin"), ("c", "admin")):
        collection.set(key, {"role": role}, {"role": role})
    seen: list[str] = []

    def is_admin(entry: Any) -> bool:
        seen.append(entry["role"])
        return entry["role"] == "admin"

    result = collection.find(is_admin)

    assert result is not None and result.key == "b"
    assert result.record is not None and result.record["role"] == "admin"
    assert seen == ["dev", "admin"]


def test_find_can_skip_record_loading(tmp_path: Path) -> None:
    """load_record=False should return the index entry only."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("a", {"role": "dev"}, {"role": "dev"})

    result = collection.find(lambda entry: True, load_record=False)

    assert result is not None and result.record is None
    assert result.index_entry == {"role": "dev"}


def test_find_results_do_not_alias_the_index(tmp_path: Path) -> None:
    """Mutating a returned index entry should leave the stored index alone."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"name": "Ada"}, {"role": "admin"})

    hit = collection.find(lambda entry: True)
    listed = collection.find_all()
    assert hit is not None
    hit.index_entry["role"] = "changed"
    listed[0].index_entry["extra"] = True
    collection.set("bob", {"name": "Bob"})

    stored = json.loads(collection.index_path.read_text(encoding="utf-8"))["data"]["ada"]
    assert collection.get_index_entry("ada") == {"role": "admin"} and stored == {"role": "admin"}


def test_find_returns_none_without_match(tmp_path: Path) -> None:
    """No match should yield None."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("a", {"role": "dev"})

    assert collection.find(lambda entry: False) is None


def test_find_all_applies_offset_and_limit(tmp_path: Path) -> None:
    """offset=1, limit=1 over three matches should return the second one."""
    collection = RecordCollection(tmp_path / "users")
    for key in ("a", "b", "c"):
        collection.set(key, {"key": key}, {"kind": "match"})

    results = collection.find_all(lambda entry: entry["kind"] == "match", offset=1, limit=1)

    assert [result.key for result in results] == ["b"]


def test_find_all_without_predicate_returns_everything(tmp_path: Path) -> None:
    """A missing predicate should match every entry in index order."""
    collection = RecordCollection(tmp_path / "users")
    for key in ("c", "a", "b"):
        collection.set(key, {"key": key})

    results = collection.find_all()

    assert [result.key for result in results] == ["c", "a", "b"]


def test_find_all_skips_unloadable_records_without_counting_them(tmp_path: Path) -> None:
    """Missing or corrupt record files should not count toward the limit."""
    collection = RecordCollection(tmp_path / "users")
    for key in ("a", "b", "c", "d"):
        collection.set(key, {"key": key})
    _record_file(collection, "b").unlink()
    _record_file(collection, "c").write_text("{broken", encoding="utf-8")

    results = collection.find_all(limit=2)

    assert [result.key for result in results] == ["a", "d"]


def test_bulk_set_writes_all_records_with_one_index_rewrite(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A batch should rewrite the index exactly once."""
    collection = RecordCollection(tmp_path / "users")
    written: list[Path] = []
    original_write = record_collection_module.write_json_atomic

    def counting_write(file_path: Path, payload: dict[str, Any]) -> None:
        written.append(file_path)
        original_write(file_path, payload)

    monkeypatch.setattr(record_collection_module, "write_json_atomic", counting_write)

    collection.bulk_set(
        {
            "a": {"value": {"name": "A"}},
            "b": {"value": {"name": "B"}, "index": {"role": "admin"}},
            "c": {"value": {"name": "C"}},
        }
    )

    assert written.count(collection.index_path) == 1
    assert collection.count() == 3 and collection.get_index_entry("b") == {"role": "admin"}
    assert collection.get_index_entry("a") == {"id": "a"}


def test_bulk_set_resets_index_entry_to_default_when_omitted(tmp_path: Path) -> None:
    """Bulk updates without an index should restore the default entry."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"n": 1}, {"role": "admin"})

    collection.bulk_set({"Ada": {"value": {"n": 2}}, "bob": {"value": {"n": 3}}})

    assert collection.get_index_entry("ada") == {"id": "ada"}
    assert collection.get_index_entry("bob") == {"id": "bob"}
    assert json.loads(collection.index_path.read_text(encoding="utf-8"))["data"]["ada"] == {
        "id": "ada"
    }


def test_bulk_set_rejects_non_mapping_payload(tmp_path: Path) -> None:
    """A list payload should raise InvalidBulkInputError when events are off."""
    collection = RecordCollection(tmp_path / "users")

    with pytest.raises(InvalidBulkInputError):
        collection.bulk_set(["a", "b"], emit_events=False)  # type: ignore[arg-type]

    assert collection.count() == 0


def test_bulk_set_reports_bad_entry_and_persists_applied_ones(tmp_path: Path) -> None:
    """Entries applied before a failure should be indexed on disk."""
    collection = RecordCollection(tmp_path / "users")
    errors = _capture(collection.events, "error")

    collection.bulk_set({"a": {"value": {"n": 1}}, "b": "not-a-mapping"})  # type: ignore[dict-item]
    reopened = RecordCollection(tmp_path / "users")

    assert isinstance(errors[0][0], InvalidBulkInputError)
    assert errors[0][1]["method"] == "bulk_set"
    assert reopened.keys() == ["a"]


def test_deferred_index_persist_is_flushed_explicitly(tmp_path: Path) -> None:
    """persist_index=False should leave the index file stale until flushed."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("a", {"n": 1}, persist_index=False)
    stale = RecordCollection(tmp_path / "users").keys()

    collection.flush_index()

    assert stale == [] and RecordCollection(tmp_path / "users").keys() == ["a"]


def test_delete_all_real_removes_every_file(tmp_path: Path) -> None:
    """A real clear should delete every record file and index entry."""
    collection = RecordCollection(tmp_path / "users")
    for key in ("a", "b"):
        collection.set(key, {"key": key})

    collection.delete_all()

    assert collection.count() == 0 and list(collection.records_folder.iterdir()) == []


def test_delete_all_soft_resets_index_and_orphans_files(tmp_path: Path) -> None:
    """A soft clear should only reset the index."""
    collection = RecordCollection(tmp_path / "users")
    for key in ("a", "b"):
        collection.set(key, {"key": key})

    collection.delete_all(real=False)

    assert collection.count() == 0 and collection.keys() == []
    assert sorted(path.name for path in collection.records_folder.iterdir()) == [
        "a.json",
        "b.json",
    ]


def test_version_is_refreshed_on_index_write(tmp_path: Path) -> None:
    """The index version should be an ISO timestamp refreshed on writes."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("a", {"n": 1})
    on_disk = json.loads(collection.index_path.read_text(encoding="utf-8"))

    assert collection.version() == on_disk["version"]
    assert collection.version().endswith("Z") and "T" in collection.version()


def test_corrupt_record_is_reported_as_error_event(tmp_path: Path) -> None:
    """Read failures should become error notifications with context."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"name": "Ada"})
    _record_file(collection, "ada").write_text("{oops", encoding="utf-8")
    errors = _capture(collection.events, "error")

    record = collection.get("ada")

    assert record is None and isinstance(errors[0][0], StorageIOError)
    assert errors[0][1] == {"method": "get", "key": "ada"}


def test_corrupt_record_raises_when_events_disabled(tmp_path: Path) -> None:
    """Read failures should propagate when events are disabled."""
    collection = RecordCollection(tmp_path / "users")
    collection.set("ada", {"name": "Ada"})
    _record_file(collection, "ada").write_text("{oops", encoding="utf-8")

    with pytest.raises(StorageIOError):
        collection.get("ada", emit_events=False)

    assert collection.exists("ada")


def test_corrupt_index_leaves_collection_uninitialized(tmp_path: Path) -> None:
    """A broken index should be reported once and block later operations."""
    folder = tmp_path / "users"
    folder.mkdir()
    (folder / "_m_.json").write_text("{broken", encoding="utf-8")
    bus = EventBus()
    errors = _capture(bus, "error")

    collection = RecordCollection(folder, events=bus)

    assert not collection.is_initialized and errors[0][1]["method"] == "init"
    assert collection.count() == 0 and collection.keys() == []
    with pytest.raises(NotInitializedError):
        collection.set("ada", {"name": "Ada"}, emit_events=False)


def test_corrupt_index_raises_when_events_disabled(tmp_path: Path) -> None:
    """Construction should fail fast when events are disabled."""
    folder = tmp_path / "users"
    folder.mkdir()
    (folder / "_m_.json").write_text('{"total": "three"}', encoding="utf-8")

    with pytest.raises(StorageIOError):
        RecordCollection(folder, emit_events=False)

    assert (folder / "_m_.json").exists()
