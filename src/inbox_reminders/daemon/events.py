"""Observer registry the daemon publishes lifecycle and processing events to."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from inbox_reminders.core.datetime_utils import utc_now

LOGGER = logging.getLogger(__name__)


class DaemonEventType(str, Enum):
    """Names of events emitted by the processing daemon."""

    STARTED = "started"
    STOPPED = "stopped"
    PROCESSING_COMPLETE = "processing_complete"
    REMINDER_CREATED = "reminder_created"
    PROCESSING_FAILED = "processing_failed"
    PROCESSING_ERROR = "processing_error"


@dataclass(frozen=True, slots=True)
class DaemonEvent:
    """A single published notification."""

    type: DaemonEventType
    payload: Mapping[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=utc_now)


EventListener = Callable[[DaemonEvent], None]


class EventBus:
    """Synchronous publish/subscribe list.

    Listeners run on the publisher's thread in registration order. A listener
    that raises is logged and skipped; it never interrupts the daemon.
    """

    def __init__(self) -> None:
        self._listeners: dict[DaemonEventType | None, list[EventListener]] = {}

    def subscribe(
        self, event_type: DaemonEventType | str, listener: EventListener
    ) -> Callable[[], None]:
        """Register ``listener`` for one event type; return an unsubscribe hook."""
        key = DaemonEventType(event_type)
        self._listeners.setdefault(key, []).append(listener)
        return lambda: self._remove(key, listener)

    def subscribe_all(self, listener: EventListener) -> Callable[[], None]:
        """Register ``listener`` for every event type."""
        self._listeners.setdefault(None, []).append(listener)
        return lambda: self._remove(None, listener)

    def publish(self, event_type: DaemonEventType, **payload: Any) -> DaemonEvent:
        """Deliver an event to its listeners and return it."""
        event = DaemonEvent(type=event_type, payload=payload)
        listeners = [
            *self._listeners.get(event_type, ()),
            *self._listeners.get(None, ()),
        ]
        LOGGER.debug("Publishing %s to %d listener(s)", event_type.value, len(listeners))
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception("Listener %r failed on %s", listener, event_type.value)
        return event

    def listener_count(self, event_type: DaemonEventType | None = None) -> int:
        """Return how many listeners are registered for ``event_type``."""
        return len(self._listeners.get(event_type, ()))

    def _remove(self, key: DaemonEventType | None, listener: EventListener) -> None:
        listeners = self._listeners.get(key, [])
        if listener in listeners:
            listeners.remove(listener)


__all__ = ["DaemonEvent", "DaemonEventType", "EventBus", "EventListener"]
