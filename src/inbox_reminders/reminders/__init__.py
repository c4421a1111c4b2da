"""Reminder creation and scheduling."""

from .apple import AppleRemindersSink, AppleScriptError, build_notes, render_title
from .scheduling import compute_reminder_due, parse_target_date

__all__ = [
    "AppleRemindersSink",
    "AppleScriptError",
    "build_notes",
    "compute_reminder_due",
    "parse_target_date",
    "render_title",
]
