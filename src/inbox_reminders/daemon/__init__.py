"""Scheduling daemon, retry queue, persisted state and event bus."""

from .events import DaemonEvent, DaemonEventType, EventBus
from .processor import CONFIDENCE_THRESHOLD, ProcessingDaemon, ReminderDeliveryError
from .queue import ProcessingQueue
from .state import StateStore, deserialize_state, serialize_state

__all__ = [
    "CONFIDENCE_THRESHOLD",
    "DaemonEvent",
    "DaemonEventType",
    "EventBus",
    "ProcessingDaemon",
    "ProcessingQueue",
    "ReminderDeliveryError",
    "StateStore",
    "deserialize_state",
    "serialize_state",
]
