"""
Event Bus

DESIGN DECISION: Components never call into the presentation layer.
They publish notifications here and whoever cares subscribes.
This provides:
1. A one-way, observable channel for fire-and-forget work (journal sync)
2. A log line for every state change
3. Isolation - a failing listener cannot break the emitting component

The bus is synchronous: listeners run inline, on the emitting coroutine's
thread, in subscription order.
"""

import logging
from typing import Any, Callable, Optional

import structlog

from expense_engine.models.events import EventSeverity, EventType, Notification


Listener = Callable[[Notification], Any]


def _configure_structlog(renderer) -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Configure structlog for local logging
_configure_structlog(structlog.processors.JSONRenderer())


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """
    Route structlog output through a stdlib handler at the given level.

    Call once at startup. json_logs=False swaps the JSON renderer for the
    human-readable console renderer.
    """
    logging.basicConfig(format="%(message)s", level=level, force=True)
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    _configure_structlog(renderer)


class EventBus:
    """
    Publish/subscribe hub for notifications.

    Usage:
        unsubscribe = bus.on(EventType.SYNCED, handle_synced)
        bus.emit(EventType.SYNCED, job)
        unsubscribe()
    """

    def __init__(self):
        self._listeners: dict[EventType, list[Listener]] = {}
        self._logger = structlog.get_logger(__name__)

    def on(self, event_type: EventType, callback: Listener) -> Callable[[], None]:
        """Subscribe to an event type. Returns an unsubscribe function."""
        self._listeners.setdefault(event_type, []).append(callback)
        return lambda: self.off(event_type, callback)

    def off(self, event_type: EventType, callback: Listener) -> None:
        """Remove a subscription. Unknown callbacks are ignored."""
        callbacks = self._listeners.get(event_type)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def once(self, event_type: EventType, callback: Listener) -> Callable[[], None]:
        """Subscribe for the next emission only."""

        def wrapped(notification: Notification) -> None:
            self.off(event_type, wrapped)
            callback(notification)

        return self.on(event_type, wrapped)

    def emit(self, event_type: EventType, data: Any = None) -> Notification:
        """
        Publish a notification to every listener of its type.

        Always logs locally. Listener failures are logged and swallowed.
        """
        notification = Notification(event_type=event_type, data=data)
        log_dict = notification.to_log_dict()

        if notification.severity == EventSeverity.WARNING:
            self._logger.warning("notification", **log_dict)
        elif notification.severity == EventSeverity.DEBUG:
            self._logger.debug("notification", **log_dict)
        else:
            self._logger.info("notification", **log_dict)

        for callback in list(self._listeners.get(event_type, [])):
            try:
                callback(notification)
            except Exception as e:
                self._logger.error(
                    "listener_failed",
                    event_type=event_type.value,
                    error=str(e),
                    exc_info=True,
                )

        return notification

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def clear(self) -> None:
        self._listeners.clear()
