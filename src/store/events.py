"""Lifecycle notification bus.

Collections and namespaces report ``missed``, ``set``, ``deleted`` and
``error`` notifications through an EventBus owned by each handle.
"""

from __future__ import annotations

from core.constants import EVENT_ERROR, SUPPORTED_EVENTS
from core.errors import JsonStashError
from core.logging_config import get_logger
from core.types import EventListener

_LOGGER = get_logger(__name__)


class EventBus:
    """Synchronous listener registry keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}

    def on(self, event: str, listener: EventListener) -> None:
        """Register a listener for one event name.

        Args:
            event: One of ``missed``, ``set``, ``deleted`` or ``error``.
            listener: Callable invoked with the event arguments.

        Raises:
            JsonStashError: If the event name is unknown.
        """
        if event not in SUPPORTED_EVENTS:
            raise JsonStashError(
                f"Unsupported event '{event}'. Use one of {', '.join(SUPPORTED_EVENTS)}."
            )
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: EventListener) -> None:
        """Remove a previously registered listener if present."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: object) -> bool:
        """Invoke listeners in registration order.

        Args:
            event: Event name.
            *args: Positional arguments passed to each listener.

        Returns:
            True when at least one listener was invoked.
        """
        listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            listener(*args)
        return bool(listeners)


def report_error(
    events: EventBus,
    error: JsonStashError,
    emit_events: bool,
    **context: object,
) -> None:
    """Route an operation failure to the caller.

    Must be called from inside an ``except`` block. With events enabled the
    failure is logged and emitted as ``error(error, context)``; otherwise it
    is raised again.

    Args:
        events: Bus of the handle that failed.
        error: Failure raised by the operation.
        emit_events: Whether failures are reported instead of raised.
        **context: Method name and arguments of the failed call.

    Raises:
        JsonStashError: The original error when events are disabled.
    """
    if not emit_events:
        raise error
    _LOGGER.error(
        "operation_failed",
        method=context.get("method"),
        error_type=type(error).__name__,
        error=str(error),
    )
    events.emit(EVENT_ERROR, error, context)
