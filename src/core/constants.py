"""Core constants used across jsonstash modules.

This module centralizes on-disk names, reserved words and defaults.
Keeping values here avoids magic literals in storage logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path.home() / ".data"
DEFAULT_LOG_LEVEL = "warning"
COLLECTION_INDEX_FILE_NAME = "_m_.json"
NAMESPACE_INDEX_FILE_NAME = "_s_.json"
RECORDS_DIR_NAME = ".file"
MODELS_DIR_NAME = ".model"
SCHEMAS_DIR_NAME = ".schema"
RECORD_FILE_SUFFIX = ".json"
TEMP_FILE_SUFFIX = ".tmp"
CHILD_KIND_MODEL = "model"
CHILD_KIND_SCHEMA = "schema"
CHILD_KINDS = (CHILD_KIND_MODEL, CHILD_KIND_SCHEMA)
RESERVED_KEYS = frozenset(
    {
        Path(COLLECTION_INDEX_FILE_NAME).stem,
        Path(NAMESPACE_INDEX_FILE_NAME).stem,
        CHILD_KIND_MODEL,
        CHILD_KIND_SCHEMA,
    }
)
KEY_PATTERN = r"^[A-Za-z0-9_-]+$"
CREATED_AT_FIELD = "createdAt"
UPDATED_AT_FIELD = "updatedAt"
DEFAULT_INDEX_ID_FIELD = "id"
EVENT_MISSED = "missed"
EVENT_SET = "set"
EVENT_DELETED = "deleted"
EVENT_ERROR = "error"
SUPPORTED_EVENTS = (EVENT_MISSED, EVENT_SET, EVENT_DELETED, EVENT_ERROR)
TRUE_ENV_VALUES = ("1", "true", "yes", "on")
FALSE_ENV_VALUES = ("0", "false", "no", "off")
SUPPORTED_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
