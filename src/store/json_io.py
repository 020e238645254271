"""JSON file persistence helpers.

This module isolates JSON reads, atomic writes and removals so that
collection and namespace classes stay focused on index bookkeeping.
Every OS or decode failure surfaces as StorageIOError.
"""

from __future__ import annotations

from contextlib import suppress
import json
import os
from pathlib import Path
import shutil
import tempfile
from typing import Any

from core.constants import TEMP_FILE_SUFFIX
from core.errors import StorageIOError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)


def read_json_object(file_path: Path) -> dict[str, Any] | None:
    """Read a JSON object from disk.

    Args:
        file_path: JSON file path.

    Returns:
        Parsed object, or None when the file does not exist.

    Raises:
        StorageIOError: If the file cannot be read, is not valid JSON,
            or does not hold a JSON object at top level.
    """
    if not file_path.exists():
        return None
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise StorageIOError(
            f"Failed to parse JSON at {file_path}: {error.msg}. "
            "Repair or remove the file before retrying."
        ) from error
    except OSError as error:
        raise StorageIOError(f"Failed to read {file_path}: {error}.") from error
    if not isinstance(payload, dict):
        raise StorageIOError(
            f"Failed to parse JSON at {file_path}: expected JSON object at top level. "
            "Repair or remove the file before retrying."
        )
    return payload


def write_json_atomic(file_path: Path, payload: dict[str, Any]) -> None:
    """Write a JSON object through a temp file and atomic rename.

    The temp file lives in the target directory so ``os.replace`` never
    crosses filesystems. On failure the previous file content is untouched.

    Args:
        file_path: Target JSON path.
        payload: JSON-serializable object.

    Raises:
        StorageIOError: If the payload cannot be serialized or written.
    """
    try:
        content = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    except (TypeError, ValueError) as error:
        raise StorageIOError(
            f"Failed to serialize JSON for {file_path}: {error}. "
            "Store only JSON-compatible values."
        ) from error
    temp_path: str | None = None
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            suffix=TEMP_FILE_SUFFIX,
            prefix=f".tmp_{file_path.name}_",
            dir=str(file_path.parent),
        )
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_path, _target_mode(file_path))
        os.replace(temp_path, file_path)
    except OSError as error:
        if temp_path is not None:
            with suppress(OSError):
                os.remove(temp_path)
        raise StorageIOError(f"Failed to write {file_path}: {error}.") from error


def remove_file(file_path: Path) -> bool:
    """Delete one file if it exists.

    Returns:
        True when a file was removed.

    Raises:
        StorageIOError: If deletion fails.
    """
    if not file_path.exists():
        return False
    try:
        file_path.unlink()
    except OSError as error:
        raise StorageIOError(f"Failed to delete {file_path}: {error}.") from error
    return True


def remove_tree(folder: Path) -> bool:
    """Delete a folder subtree if it exists.

    Returns:
        True when a folder was removed.

    Raises:
        StorageIOError: If deletion fails.
    """
    if not folder.is_dir():
        return False
    try:
        shutil.rmtree(folder)
    except OSError as error:
        raise StorageIOError(f"Failed to delete folder {folder}: {error}.") from error
    _LOGGER.debug("folder_removed", folder=str(folder))
    return True


def ensure_folder(folder: Path) -> None:
    """Create a folder and its parents.

    Raises:
        StorageIOError: If the folder cannot be created.
    """
    try:
        folder.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise StorageIOError(f"Failed to create folder {folder}: {error}.") from error


def _target_mode(file_path: Path) -> int:
    """Return the permission bits a rewritten file should carry.

    Existing files keep their mode; new files follow the process umask.
    """
    try:
        return file_path.stat().st_mode & 0o777
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask
