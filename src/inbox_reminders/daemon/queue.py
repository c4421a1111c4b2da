"""In-memory FIFO of queue items awaiting a processing attempt."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from inbox_reminders.core.models import EmailMessage, QueueItem, Rule

LOGGER = logging.getLogger(__name__)


class ProcessingQueue:
    """Pending work; mutated only from the daemon's event loop."""

    def __init__(self) -> None:
        self._items: list[QueueItem] = []

    def __len__(self) -> int:
        return len(self._items)

    def contains(self, message_id: str) -> bool:
        """Return ``True`` when a message is already waiting."""
        return any(item.message.id == message_id for item in self._items)

    def enqueue(self, message: EmailMessage, rules: Sequence[Rule]) -> QueueItem:
        """Append a fresh item with ``attempts = 0``."""
        item = QueueItem(message=message, rules=tuple(rules))
        self._items.append(item)
        LOGGER.debug("Added email %s to processing queue", message.id)
        return item

    def requeue(self, item: QueueItem) -> None:
        """Put a failed item back for the next drain."""
        self._items.append(item)

    def take_snapshot(self) -> list[QueueItem]:
        """Return every pending item and leave the live queue empty."""
        snapshot = self._items
        self._items = []
        return snapshot


__all__ = ["ProcessingQueue"]
