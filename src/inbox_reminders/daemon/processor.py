"""Long-running daemon turning rule-matched emails into reminders."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from inbox_reminders.core.config import DaemonSettings
from inbox_reminders.core.datetime_utils import ensure_utc, utc_now
from inbox_reminders.core.interfaces import (
    DaemonStartupError,
    FieldExtractor,
    MailSource,
    NotRunningError,
    ReminderSink,
    RuleMatcher,
    RuleStore,
)
from inbox_reminders.core.models import (
    DaemonState,
    DaemonStats,
    DaemonStatus,
    EmailMessage,
    QueueItem,
    Rule,
)
from .events import DaemonEventType, EventBus
from .queue import ProcessingQueue
from .state import StateStore

LOGGER = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 25
STOP_POLL_SECONDS = 0.1


class ReminderDeliveryError(RuntimeError):
    """Raised inside a queue item attempt when the reminder sink fails."""


class ProcessingDaemon:
    """Schedule processing cycles over injected collaborators.

    All state lives on the event loop that calls :meth:`start`. Blocking
    collaborator calls run in worker threads via :func:`asyncio.to_thread`,
    so the loop never blocks, and a single lock guarantees that at most one
    cycle executes at a time.
    """

    # pylint: disable=too-many-instance-attributes,too-many-arguments
    def __init__(
        self,
        settings: DaemonSettings,
        *,
        rule_store: RuleStore,
        mail_sources: Sequence[MailSource],
        matcher: RuleMatcher,
        extractor: FieldExtractor,
        reminder_sink: ReminderSink,
        state_store: StateStore | None = None,
        events: EventBus | None = None,
    ) -> None:
        self._settings = settings
        self._rule_store = rule_store
        self._configured_sources = tuple(mail_sources)
        self._active_sources: tuple[MailSource, ...] = ()
        self._matcher = matcher
        self._extractor = extractor
        self._sink = reminder_sink
        self._state_store = state_store or StateStore(settings.state_file)
        self.events = events or EventBus()

        self._state = DaemonState()
        self._queue = ProcessingQueue()
        self._status = DaemonStatus.STOPPED
        self._cycle_lock = asyncio.Lock()
        self._timer_task: asyncio.Task[None] | None = None
        self._inflight_cycle: asyncio.Future[None] | None = None
        self._started_monotonic: float | None = None

        LOGGER.info(
            "Processing daemon initialized: interval=%smin max_emails=%s "
            "retries=%s sources=%s",
            settings.interval_minutes,
            settings.max_emails_per_scan,
            settings.retry_attempts,
            [source.provider for source in self._configured_sources],
        )

    # Lifecycle ----------------------------------------------------------------
    async def start(self) -> None:
        """Connect collaborators, run one cycle and arm the repeating timer."""
        if self._status is not DaemonStatus.STOPPED:
            LOGGER.warning("Daemon is already %s", self._status.value)
            return

        LOGGER.info("Starting processing daemon...")
        self._status = DaemonStatus.STARTING
        try:
            self._state = await asyncio.to_thread(self._state_store.load)
            self._active_sources = await self._initialize_sources()
            if not self._active_sources:
                raise DaemonStartupError(
                    "No email clients available - check provider configuration"
                )
            await self._verify_reminder_sink()
        except Exception:
            self._status = DaemonStatus.STOPPED
            self._active_sources = ()
            LOGGER.error("Failed to start daemon", exc_info=True)
            raise

        self._status = DaemonStatus.RUNNING
        self._started_monotonic = time.monotonic()
        await self._process_once(skip_if_busy=False)
        if self._status is not DaemonStatus.RUNNING:
            LOGGER.info("Daemon stopped during its first cycle, timer not armed")
            return
        self._arm_timer()

        LOGGER.info(
            "Processing daemon started with %s-minute intervals",
            self._settings.interval_minutes,
        )
        self.events.publish(DaemonEventType.STARTED)

    async def stop(self) -> None:
        """Disarm the timer, let any in-flight cycle finish and persist state."""
        if self._status is not DaemonStatus.RUNNING:
            LOGGER.warning("Daemon is not running")
            return

        LOGGER.info("Stopping processing daemon...")
        self._status = DaemonStatus.STOPPING
        await self._disarm_timer()

        while self._cycle_in_flight():
            await asyncio.sleep(STOP_POLL_SECONDS)

        await asyncio.to_thread(self._state_store.save, self._state)
        self._status = DaemonStatus.STOPPED
        self._started_monotonic = None
        LOGGER.info("Processing daemon stopped")
        self.events.publish(DaemonEventType.STOPPED)

    async def force_processing(self) -> None:
        """Run one cycle now, after any cycle already in flight."""
        if self._status is not DaemonStatus.RUNNING:
            raise NotRunningError("Daemon is not running")
        LOGGER.info("Force processing requested")
        await self._process_once(skip_if_busy=False)

    def update_config(self, **changes: Any) -> DaemonSettings:
        """Apply validated setting changes; re-arm the timer on interval change."""
        merged = {**self._settings.model_dump(), **changes}
        updated = DaemonSettings.model_validate(merged)
        interval_changed = updated.interval_minutes != self._settings.interval_minutes
        self._settings = updated

        if interval_changed and self._timer_task is not None:
            self._timer_task.cancel()
            self._arm_timer()
            LOGGER.info(
                "Daemon interval updated to %s minutes", updated.interval_minutes
            )
        return updated

    # Introspection ------------------------------------------------------------
    @property
    def status(self) -> DaemonStatus:
        return self._status

    def is_running(self) -> bool:
        return self._status is DaemonStatus.RUNNING

    def is_processing(self) -> bool:
        return self._cycle_lock.locked()

    def get_state(self) -> DaemonState:
        """Return a copy of the state that callers may freely mutate."""
        return copy.deepcopy(self._state)

    def get_config(self) -> DaemonSettings:
        return self._settings.model_copy()

    def get_queue_size(self) -> int:
        return len(self._queue)

    def get_stats(self) -> DaemonStats:
        uptime = 0.0
        if self._started_monotonic is not None:
            uptime = time.monotonic() - self._started_monotonic
        return DaemonStats(
            status=self._status,
            uptime_seconds=uptime,
            total_messages_processed=self._state.total_messages_processed,
            total_reminders_created=self._state.total_reminders_created,
            queue_size=len(self._queue),
            last_processed_timestamp=self._state.last_processed_timestamp,
            is_processing=self.is_processing(),
            last_error_timestamp=self._state.last_error_timestamp,
            last_error_message=self._state.last_error_message,
        )

    # Startup helpers ----------------------------------------------------------
    async def _initialize_sources(self) -> tuple[MailSource, ...]:
        sources = self._configured_sources
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(source.initialize) for source in sources),
            return_exceptions=True,
        )
        ready: list[MailSource] = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, BaseException):
                LOGGER.error(
                    "Failed to initialize %s client: %s", source.provider, outcome
                )
                continue
            LOGGER.info("%s client initialized", source.provider)
            ready.append(source)
        return tuple(ready)

    async def _verify_reminder_sink(self) -> None:
        access = await asyncio.to_thread(self._sink.test_access)
        if not access.success:
            raise DaemonStartupError(f"Reminder sink not accessible: {access.error}")
        LOGGER.info("Reminder sink access confirmed")

    # Timer --------------------------------------------------------------------
    def _arm_timer(self) -> None:
        self._timer_task = asyncio.create_task(
            self._timer_loop(), name="inbox-reminders-timer"
        )

    async def _disarm_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.interval_minutes * 60)
            if self._cycle_in_flight():
                LOGGER.debug("Skipping scheduled run - processing already in progress")
                continue
            self._inflight_cycle = asyncio.ensure_future(
                self._process_once(skip_if_busy=True)
            )
            # Shielded so disarming the timer never interrupts a running cycle.
            await asyncio.shield(self._inflight_cycle)

    def _cycle_in_flight(self) -> bool:
        if self._cycle_lock.locked():
            return True
        return self._inflight_cycle is not None and not self._inflight_cycle.done()

    # Cycle --------------------------------------------------------------------
    async def _process_once(self, *, skip_if_busy: bool) -> None:
        if skip_if_busy and self._cycle_lock.locked():
            LOGGER.debug("Cycle already running, skipping")
            return
        async with self._cycle_lock:
            await self._run_cycle()

    async def _run_cycle(self) -> None:
        started = time.monotonic()
        matched_count = 0
        failed = False
        LOGGER.info("Starting email processing cycle...")
        try:
            rules = await asyncio.to_thread(self._rule_store.get_active_rules)
            LOGGER.info("Loaded %d active rules", len(rules))

            messages = await self._fetch_new_messages()
            LOGGER.info("Fetched %d new emails", len(messages))

            for message in messages:
                names = self._matcher.match(message, rules)
                if not names:
                    continue
                matched_count += 1
                self._enqueue(message, names, rules)
            LOGGER.info("%d emails matched rules", matched_count)

            await self._drain_queue()
            self._state.last_processed_timestamp = utc_now()
        except Exception as exc:  # pylint: disable=broad-except
            failed = True
            LOGGER.error("Error during email processing cycle: %s", exc, exc_info=True)
            self._state.last_error_timestamp = utc_now()
            self._state.last_error_message = str(exc) or type(exc).__name__
        finally:
            await asyncio.to_thread(self._state_store.save, self._state)

        processing_time = time.monotonic() - started
        if failed:
            self.events.publish(
                DaemonEventType.PROCESSING_ERROR,
                error=self._state.last_error_message,
                timestamp=self._state.last_error_timestamp,
                processing_time=processing_time,
            )
            return

        LOGGER.info("Email processing cycle completed in %.2fs", processing_time)
        self.events.publish(
            DaemonEventType.PROCESSING_COMPLETE,
            emails_processed=matched_count,
            processing_time=processing_time,
            queue_size=len(self._queue),
        )

    async def _fetch_new_messages(self) -> list[EmailMessage]:
        ready = [source for source in self._active_sources if source.is_ready()]
        if not ready:
            LOGGER.warning("No mail source is ready; nothing fetched this cycle")
            return []

        per_source = self._settings.max_emails_per_scan // len(ready)
        if per_source == 0:
            LOGGER.warning(
                "max_emails_per_scan=%s is below the number of sources (%d)",
                self._settings.max_emails_per_scan,
                len(ready),
            )
            return []
        results = await asyncio.gather(
            *(
                asyncio.to_thread(source.get_emails, limit=per_source)
                for source in ready
            ),
            return_exceptions=True,
        )

        fetched: list[EmailMessage] = []
        for source, result in zip(ready, results):
            if isinstance(result, BaseException):
                LOGGER.error("Failed to fetch %s emails: %s", source.provider, result)
                continue
            fetched.extend(result)

        return [message for message in fetched if self._is_unseen(message)]

    def _is_unseen(self, message: EmailMessage) -> bool:
        if message.id in self._state.processed_message_ids:
            return False
        # Messages at or before the watermark are assumed already seen.
        timestamp = ensure_utc(message.timestamp)
        return timestamp is not None and timestamp > self._state.last_processed_timestamp

    def _enqueue(
        self, message: EmailMessage, names: Sequence[str], rules: Sequence[Rule]
    ) -> None:
        if message.id in self._state.processed_message_ids:
            return
        if self._queue.contains(message.id):
            LOGGER.debug("Email %s already queued", message.id)
            return
        wanted = set(names)
        matched_rules = [rule for rule in rules if rule.name in wanted]
        enriched = replace(message, matched_rule_names=tuple(names))
        self._queue.enqueue(enriched, matched_rules)

    # Queue draining -------------------------------------------------------------
    async def _drain_queue(self) -> None:
        snapshot = self._queue.take_snapshot()
        if snapshot:
            LOGGER.info("Processing queue with %d items", len(snapshot))

        for item in snapshot:
            try:
                await self._process_item(item)
            except Exception as exc:  # pylint: disable=broad-except
                self._record_failure(item, exc)
                continue

            self._state.processed_message_ids.add(item.message.id)
            self._state.total_messages_processed += 1

    async def _process_item(self, item: QueueItem) -> None:
        message = item.message
        LOGGER.info("Processing email %s from %s", message.id, message.sender)
        rules_by_name = {rule.name: rule for rule in item.rules}

        for rule_name in message.matched_rule_names:
            if rule_name in item.completed_rules:
                continue
            rule = rules_by_name.get(rule_name)
            if rule is None:
                LOGGER.warning("Rule not found: %s", rule_name)
                continue

            result = await asyncio.to_thread(self._extractor.extract, message, rule)
            if result.confidence < CONFIDENCE_THRESHOLD:
                LOGGER.warning(
                    "Low confidence (%s%%) for email %s, skipping reminder creation",
                    result.confidence,
                    message.id,
                )
                item.completed_rules.add(rule_name)
                continue

            reminder = await asyncio.to_thread(
                self._sink.create_reminder_from_extracted_data,
                result.fields,
                rule.reminder_template,
                message.id,
            )
            if not reminder.success:
                raise ReminderDeliveryError(
                    reminder.error or "Reminder creation failed"
                )

            item.completed_rules.add(rule_name)
            self._state.total_reminders_created += 1
            LOGGER.info(
                "Created reminder %s for email %s", reminder.reminder_id, message.id
            )
            self.events.publish(
                DaemonEventType.REMINDER_CREATED,
                email_id=message.id,
                reminder_id=reminder.reminder_id,
                rule_name=rule_name,
                confidence=result.confidence,
            )

    def _record_failure(self, item: QueueItem, exc: Exception) -> None:
        item.attempts += 1
        item.last_attempt_at = utc_now()
        item.last_error = str(exc) or type(exc).__name__
        LOGGER.error(
            "Failed to process email %s: %s", item.message.id, item.last_error
        )

        if item.attempts < self._settings.retry_attempts:
            LOGGER.info(
                "Retrying email %s on next cycle (attempt %d/%d)",
                item.message.id,
                item.attempts + 1,
                self._settings.retry_attempts,
            )
            self._queue.requeue(item)
            return

        LOGGER.error("Max retry attempts reached for email %s", item.message.id)
        self.events.publish(
            DaemonEventType.PROCESSING_FAILED,
            email_id=item.message.id,
            error=item.last_error,
            attempts=item.attempts,
        )


__all__ = ["CONFIDENCE_THRESHOLD", "ProcessingDaemon", "ReminderDeliveryError"]
