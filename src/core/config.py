"""Runtime configuration model for jsonstash.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_DATA_ROOT,
    DEFAULT_LOG_LEVEL,
    FALSE_ENV_VALUES,
    SUPPORTED_LOG_LEVELS,
    TRUE_ENV_VALUES,
)
from core.errors import JsonStashConfigError


@dataclass(frozen=True)
class StashConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Root namespace folder.
        emit_events: Default event mode for handles built from this config.
        log_level: Minimum structured log level.
    """

    data_root: Path
    emit_events: bool
    log_level: str

    @classmethod
    def from_env(cls) -> "StashConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            JsonStashConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv("JSONSTASH_DATA_ROOT", str(DEFAULT_DATA_ROOT))
        emit_events_value = os.getenv("JSONSTASH_EMIT_EVENTS", "true")
        log_level_value = os.getenv("JSONSTASH_LOG_LEVEL", DEFAULT_LOG_LEVEL)
        return cls(
            data_root=Path(data_root_value).expanduser().resolve(),
            emit_events=_parse_bool("JSONSTASH_EMIT_EVENTS", emit_events_value),
            log_level=_parse_log_level(log_level_value),
        )


def _parse_bool(variable_name: str, raw_value: str) -> bool:
    """Parse a boolean environment value.

    Args:
        variable_name: Environment variable name, used in messages.
        raw_value: Raw string from environment.

    Returns:
        Parsed boolean.

    Raises:
        JsonStashConfigError: If the value is not a recognized boolean.
    """
    normalized = raw_value.strip().lower()
    if normalized in TRUE_ENV_VALUES:
        return True
    if normalized in FALSE_ENV_VALUES:
        return False
    raise JsonStashConfigError(
        f"Invalid {variable_name} value: expected boolean, got '{raw_value}'. "
        f"Set {variable_name} to one of {', '.join(TRUE_ENV_VALUES + FALSE_ENV_VALUES)}."
    )


def _parse_log_level(raw_value: str) -> str:
    normalized = raw_value.strip().lower()
    if normalized not in SUPPORTED_LOG_LEVELS:
        raise JsonStashConfigError(
            f"Invalid JSONSTASH_LOG_LEVEL value: got '{raw_value}'. "
            f"Set JSONSTASH_LOG_LEVEL to one of {', '.join(SUPPORTED_LOG_LEVELS)}."
        )
    return normalized
