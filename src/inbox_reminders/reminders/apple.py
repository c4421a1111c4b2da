"""Apple Reminders integration driven through ``osascript``."""

from __future__ import annotations

import logging
import re
import subprocess
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from inbox_reminders.core.config import RemindersSettings
from inbox_reminders.core.datetime_utils import utc_now
from inbox_reminders.core.interfaces import ReminderSink
from inbox_reminders.core.models import (
    AccessCheck,
    ReminderPriority,
    ReminderResult,
    ReminderTemplate,
)

from .scheduling import compute_reminder_due

LOGGER = logging.getLogger(__name__)

PRIORITY_VALUES: dict[ReminderPriority, int] = {"low": 1, "normal": 5, "high": 9}

PERMISSION_MARKERS = ("not allowed assistive access", "not authorized", "permission denied")
PERMISSION_HINT = (
    "AppleScript permission denied. Grant automation access to Reminders in "
    "System Settings > Privacy & Security > Automation."
)

_PLACEHOLDER = re.compile(r"\$\{[^}]+\}")
_WHITESPACE = re.compile(r"\s+")

Runner = Callable[..., subprocess.CompletedProcess[str]]


class AppleScriptError(RuntimeError):
    """Raised when ``osascript`` exits with an error."""


class AppleRemindersSink(ReminderSink):
    """Create reminders in the macOS Reminders app."""

    def __init__(
        self,
        settings: RemindersSettings,
        *,
        runner: Runner = subprocess.run,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._runner = runner
        self._clock = clock
        self._tz = ZoneInfo(settings.timezone)

    # Public API ---------------------------------------------------------------
    def test_access(self) -> AccessCheck:
        LOGGER.info("Testing Apple Reminders access...")
        try:
            output = self._run('tell application "Reminders"\n  return count of lists\nend tell')
        except AppleScriptError as exc:
            LOGGER.error("Apple Reminders access test failed: %s", exc)
            return AccessCheck(success=False, error=_friendly_error(str(exc)))
        LOGGER.info("Apple Reminders access successful. Found %s lists.", output.strip())
        return AccessCheck(success=True)

    def create_reminder(
        self,
        title: str,
        *,
        due: datetime | None = None,
        list_name: str | None = None,
        notes: str | None = None,
        priority: ReminderPriority | None = None,
    ) -> ReminderResult:
        """Create one reminder; failures are reported in the result."""
        if not title.strip():
            return ReminderResult(success=False, error="Reminder title cannot be empty")

        target_list = list_name or self._settings.default_list
        script = build_create_script(
            title, list_name=target_list, due=due, notes=notes, priority=priority
        )
        LOGGER.info("Creating reminder: %r in list %r", title, target_list)
        started = time.monotonic()
        try:
            reminder_id = self._run(script).strip()
        except AppleScriptError as exc:
            LOGGER.error(
                "Failed to create reminder after %.0fms: %s",
                (time.monotonic() - started) * 1000,
                exc,
            )
            return ReminderResult(success=False, error=_friendly_error(str(exc)))

        LOGGER.info(
            "Created reminder in %.0fms, ID: %s",
            (time.monotonic() - started) * 1000,
            reminder_id,
        )
        return ReminderResult(success=True, reminder_id=reminder_id)

    def create_reminder_from_extracted_data(
        self,
        fields: Mapping[str, Any],
        template: ReminderTemplate,
        source_message_id: str,
    ) -> ReminderResult:
        title = render_title(template.title_template, fields)
        due = compute_reminder_due(fields, template, now=self._clock(), tz=self._tz)
        return self.create_reminder(
            title,
            due=due,
            list_name=template.list_name,
            notes=build_notes(fields, source_message_id),
            priority=template.priority,
        )

    def list_exists(self, list_name: str) -> bool:
        script = (
            'tell application "Reminders"\n'
            f'  return exists list "{escape_applescript(list_name)}"\n'
            "end tell"
        )
        try:
            return self._run(script).strip().lower() == "true"
        except AppleScriptError as exc:
            LOGGER.error("Failed to check if list %r exists: %s", list_name, exc)
            return False

    def get_lists(self) -> list[str]:
        try:
            output = self._run('tell application "Reminders"\n  return name of lists\nend tell')
        except AppleScriptError as exc:
            LOGGER.error("Failed to get reminders lists: %s", exc)
            return []
        # osascript renders AppleScript lists as "A, B, C".
        return [name.strip() for name in output.strip().split(", ") if name.strip()]

    def create_list(self, list_name: str) -> bool:
        script = (
            'tell application "Reminders"\n'
            f'  make new list with properties {{name:"{escape_applescript(list_name)}"}}\n'
            "end tell"
        )
        try:
            self._run(script)
        except AppleScriptError as exc:
            LOGGER.error("Failed to create list %r: %s", list_name, exc)
            return False
        LOGGER.info("Created reminders list %r", list_name)
        return True

    def delete_reminder(self, reminder_id: str) -> bool:
        script = (
            'tell application "Reminders"\n'
            f'  delete reminder id "{escape_applescript(reminder_id)}"\n'
            "end tell"
        )
        try:
            self._run(script)
        except AppleScriptError as exc:
            LOGGER.error("Failed to delete reminder %s: %s", reminder_id, exc)
            return False
        LOGGER.info("Deleted reminder %s", reminder_id)
        return True

    # Internal helpers ---------------------------------------------------------
    def _run(self, script: str) -> str:
        LOGGER.debug("Executing AppleScript:\n%s", script)
        try:
            completed = self._runner(
                [self._settings.osascript_path, "-e", script],
                capture_output=True,
                text=True,
                timeout=self._settings.timeout_seconds,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip() or str(exc)
            raise AppleScriptError(detail) from exc
        except subprocess.TimeoutExpired as exc:
            raise AppleScriptError(
                f"osascript timed out after {self._settings.timeout_seconds}s"
            ) from exc
        except OSError as exc:
            raise AppleScriptError(f"Unable to run osascript: {exc}") from exc

        if completed.stderr and completed.stderr.strip():
            LOGGER.warning("AppleScript stderr: %s", completed.stderr.strip())
        return completed.stdout or ""


def render_title(template: str, fields: Mapping[str, Any]) -> str:
    """Substitute ``${name}`` placeholders; unknown ones are dropped."""
    result = template
    for key, value in fields.items():
        if value is None:
            continue
        result = result.replace(f"${{{key}}}", str(value))
    result = _PLACEHOLDER.sub("", result)
    return _WHITESPACE.sub(" ", result).strip()


def build_notes(fields: Mapping[str, Any], source_message_id: str) -> str:
    lines = [f"Fuente: Email {source_message_id}"]
    if fields.get("monto"):
        lines.append(f"Monto: ${fields['monto']}")
    if fields.get("empresa"):
        lines.append(f"Empresa: {fields['empresa']}")
    if fields.get("tracking"):
        lines.append(f"Tracking: {fields['tracking']}")
    return "\n".join(lines)


def escape_applescript(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def build_create_script(
    title: str,
    *,
    list_name: str,
    due: datetime | None = None,
    notes: str | None = None,
    priority: ReminderPriority | None = None,
) -> str:
    """Return the AppleScript that creates one reminder and prints its id."""
    quoted_list = escape_applescript(list_name)
    lines: list[str] = []
    if due is not None:
        # Day is reset first so month changes never overflow (e.g. 31 -> Feb).
        lines += [
            "set dueDate to current date",
            "set day of dueDate to 1",
            f"set year of dueDate to {due.year}",
            f"set month of dueDate to {due.month}",
            f"set day of dueDate to {due.day}",
            f"set hours of dueDate to {due.hour}",
            f"set minutes of dueDate to {due.minute}",
            "set seconds of dueDate to 0",
        ]
    lines += [
        'tell application "Reminders"',
        f'  if not (exists list "{quoted_list}") then',
        f'    make new list with properties {{name:"{quoted_list}"}}',
        "  end if",
        f'  set targetList to list "{quoted_list}"',
        "  set newReminder to make new reminder at end of reminders of targetList",
        f'  set name of newReminder to "{escape_applescript(title)}"',
    ]
    if notes:
        lines.append(f'  set body of newReminder to "{escape_applescript(notes)}"')
    if due is not None:
        lines.append("  set due date of newReminder to dueDate")
    if priority is not None:
        lines.append(f"  set priority of newReminder to {PRIORITY_VALUES[priority]}")
    lines += ["  return id of newReminder", "end tell"]
    return "\n".join(lines)


def _friendly_error(message: str) -> str:
    lowered = message.lower()
    if any(marker in lowered for marker in PERMISSION_MARKERS):
        return PERMISSION_HINT
    return message


__all__ = [
    "AppleRemindersSink",
    "AppleScriptError",
    "PRIORITY_VALUES",
    "build_create_script",
    "build_notes",
    "escape_applescript",
    "render_title",
]
