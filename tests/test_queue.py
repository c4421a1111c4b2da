"""Tests for the in-memory processing queue."""

from __future__ import annotations

from datetime import datetime, timezone

from inbox_reminders.core.models import EmailMessage, Rule
from inbox_reminders.daemon.queue import ProcessingQueue


def _message(message_id: str) -> EmailMessage:
    return EmailMessage(
        id=message_id,
        sender="ggcc@edificio.cl",
        subject="Gastos comunes",
        body="Monto $10.000",
        timestamp=datetime(2025, 1, 20, tzinfo=timezone.utc),
        source_provider="gmail",
    )


def test_snapshot_empties_queue_and_requeue_defers_to_next_drain() -> None:
    queue = ProcessingQueue()
    rule = Rule(name="gastos_comunes", prompt="Extrae monto")
    first = queue.enqueue(_message("gmail:1"), [rule])
    queue.enqueue(_message("gmail:2"), [rule])

    snapshot = queue.take_snapshot()
    assert [item.message.id for item in snapshot] == ["gmail:1", "gmail:2"]
    assert len(queue) == 0

    queue.requeue(first)
    assert queue.contains("gmail:1")
    assert not queue.contains("gmail:2")
    assert first.attempts == 0
    assert first.rules == (rule,)
