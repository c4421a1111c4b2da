"""Tests for the daemon event bus."""

from __future__ import annotations

from inbox_reminders.daemon.events import DaemonEvent, DaemonEventType, EventBus


def test_listeners_receive_matching_events_only() -> None:
    bus = EventBus()
    created: list[DaemonEvent] = []
    everything: list[DaemonEventType] = []
    bus.subscribe(DaemonEventType.REMINDER_CREATED, created.append)
    bus.subscribe_all(lambda event: everything.append(event.type))

    bus.publish(DaemonEventType.STARTED)
    bus.publish(DaemonEventType.REMINDER_CREATED, email_id="gmail:1", reminder_id="r-1")

    assert [event.payload["email_id"] for event in created] == ["gmail:1"]
    assert everything == [DaemonEventType.STARTED, DaemonEventType.REMINDER_CREATED]


def test_failing_listener_does_not_block_others() -> None:
    bus = EventBus()
    received: list[str] = []

    def broken(_event: DaemonEvent) -> None:
        raise RuntimeError("listener bug")

    bus.subscribe("stopped", broken)
    bus.subscribe("stopped", lambda event: received.append(event.type.value))

    bus.publish(DaemonEventType.STOPPED)

    assert received == ["stopped"]


def test_unsubscribe_removes_listener() -> None:
    bus = EventBus()
    received: list[DaemonEvent] = []
    unsubscribe = bus.subscribe(DaemonEventType.STARTED, received.append)

    unsubscribe()
    bus.publish(DaemonEventType.STARTED)

    assert received == []
    assert bus.listener_count(DaemonEventType.STARTED) == 0
