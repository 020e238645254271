"""Structured logging configuration.

This module initializes structlog with a stable JSON event format.
Storage modules log snake_case events with keyword fields.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

from core.constants import DEFAULT_LOG_LEVEL

_LOG_LEVEL = DEFAULT_LOG_LEVEL


def configure_logging(level: str) -> None:
    """Set the minimum level for structured log output.

    Args:
        level: Lower-case level name, for example ``"info"``.
    """
    global _LOG_LEVEL
    _LOG_LEVEL = level
    _configure_structlog()


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    _configure_structlog()
    return structlog.get_logger(name)


def _configure_structlog() -> None:
    level = logging.getLevelName(_LOG_LEVEL.upper())
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
