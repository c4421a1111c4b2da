"""Compute when a reminder should fire from extracted due dates."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any

from inbox_reminders.core.models import ReminderTemplate

LOGGER = logging.getLogger(__name__)

DATE_FIELDS = ("vencimiento", "fechaEntrega", "fechaImportante", "due_date")


def compute_reminder_due(
    fields: Mapping[str, Any],
    template: ReminderTemplate,
    *,
    now: datetime,
    tz: tzinfo,
) -> datetime | None:
    """Return the reminder time in ``tz``, or ``None`` without a usable date.

    The reminder fires ``days_before_reminder`` days ahead of the target date
    at ``time_of_day``. Times that are not in the future move to tomorrow.
    """
    target = _first_date(fields, tz)
    if target is None:
        return None

    at = _parse_time_of_day(template.time_of_day)
    due = datetime.combine(target - timedelta(days=template.days_before_reminder), at, tzinfo=tz)
    local_now = now.astimezone(tz)
    if due <= local_now:
        tomorrow = local_now.date() + timedelta(days=1)
        clamped = datetime.combine(tomorrow, at, tzinfo=tz)
        LOGGER.warning(
            "Calculated reminder date %s is in the past, setting for %s",
            due.isoformat(),
            clamped.isoformat(),
        )
        return clamped
    return due


def parse_target_date(value: Any, tz: tzinfo) -> date | None:
    """Interpret ``YYYY-MM-DD`` strings, ISO datetimes and date objects."""
    if isinstance(value, datetime):
        return value.astimezone(tz).date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return parsed.astimezone(tz).date() if parsed.tzinfo else parsed.date()


def _first_date(fields: Mapping[str, Any], tz: tzinfo) -> date | None:
    for name in DATE_FIELDS:
        value = fields.get(name)
        if value in (None, ""):
            continue
        parsed = parse_target_date(value, tz)
        if parsed is not None:
            return parsed
        LOGGER.debug("Ignoring unparsable %s value %r", name, value)
    return None


def _parse_time_of_day(value: str) -> time:
    hours, minutes = (int(part) for part in value.split(":", 1))
    return time(hour=hours, minute=minutes)


__all__ = ["DATE_FIELDS", "compute_reminder_due", "parse_target_date"]
