"""Unit tests for core config parsing."""

from __future__ import annotations

import pytest

from core.config import StashConfig
from core.errors import JsonStashConfigError


def test_from_env_reads_data_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve data root from environment."""
    monkeypatch.setenv("JSONSTASH_DATA_ROOT", "./.tmp-stash")

    config = StashConfig.from_env()

    assert config.data_root.name == ".tmp-stash" and config.data_root.is_absolute()


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Unset variables should fall back to documented defaults."""
    config = StashConfig.from_env()

    assert config.data_root.name == ".data"
    assert config.emit_events is True and config.log_level == "warning"


def test_from_env_parses_emit_events_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    """Boolean variables should accept common spellings."""
    monkeypatch.setenv("JSONSTASH_EMIT_EVENTS", " Off ")

    config = StashConfig.from_env()

    assert config.emit_events is False


def test_from_env_raises_for_invalid_bool(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for unrecognized boolean values."""
    monkeypatch.setenv("JSONSTASH_EMIT_EVENTS", "sometimes")

    with pytest.raises(JsonStashConfigError):
        StashConfig.from_env()


def test_from_env_raises_for_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for unknown log levels."""
    monkeypatch.setenv("JSONSTASH_LOG_LEVEL", "chatty")

    with pytest.raises(JsonStashConfigError):
        StashConfig.from_env()
