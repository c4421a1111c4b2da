"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .datetime_utils import EPOCH

RuleStatus = Literal["active", "paused", "disabled"]
ReminderPriority = Literal["low", "normal", "high"]

DEFAULT_PROVIDERS: tuple[str, ...] = ("gmail", "icloud")


@dataclass(frozen=True, slots=True)
class EmailMessage:
    """Normalized message fetched from a mail provider.

    ``id`` is qualified with the provider name so identifiers never collide
    across providers.
    """

    id: str
    sender: str
    subject: str
    body: str
    timestamp: datetime
    source_provider: str
    matched_rule_names: tuple[str, ...] = ()


class MatchCriteria(BaseModel):
    """Conditions an email must satisfy for a rule to match."""

    model_config = ConfigDict(frozen=True)

    from_contains: tuple[str, ...] = ()
    from_domains: tuple[str, ...] = ()
    subject_contains: tuple[str, ...] = ()
    subject_regex: str | None = None
    body_contains: tuple[str, ...] = ()


class ReminderTemplate(BaseModel):
    """How a reminder is titled, filed and scheduled."""

    model_config = ConfigDict(frozen=True)

    title_template: str = Field(default="${concepto} - ${monto}", min_length=1)
    list_name: str = "Facturas"
    priority: ReminderPriority = "normal"
    days_before_reminder: int = Field(default=3, ge=0)
    time_of_day: str = Field(default="09:00", pattern=r"^([01]?\d|2[0-3]):[0-5]\d$")


class Rule(BaseModel):
    """Named matching/extraction rule loaded from the rule document."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    status: RuleStatus = "active"
    providers: tuple[Literal["gmail", "icloud"], ...] = Field(
        default=DEFAULT_PROVIDERS, min_length=1
    )
    criteria: MatchCriteria = Field(default_factory=MatchCriteria)
    prompt: str = Field(min_length=1)
    reminder_template: ReminderTemplate = Field(default_factory=ReminderTemplate)


@dataclass(slots=True)
class ExtractionResult:
    """Fields extracted from a message for one rule, with a 0-100 score."""

    rule_name: str
    fields: dict[str, Any]
    confidence: int
    method: str
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ReminderResult:
    """Outcome of a reminder creation attempt."""

    success: bool
    reminder_id: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class AccessCheck:
    """Outcome of probing the reminder application."""

    success: bool
    error: str | None = None


@dataclass(slots=True)
class QueueItem:
    """Matched message awaiting a processing attempt."""

    message: EmailMessage
    rules: tuple[Rule, ...]
    attempts: int = 0
    last_attempt_at: datetime | None = None
    last_error: str | None = None
    completed_rules: set[str] = field(default_factory=set)


@dataclass(slots=True)
class DaemonState:
    """Durable daemon bookkeeping; ``processed_message_ids`` only grows."""

    last_processed_timestamp: datetime = EPOCH
    processed_message_ids: set[str] = field(default_factory=set)
    total_messages_processed: int = 0
    total_reminders_created: int = 0
    last_error_timestamp: datetime | None = None
    last_error_message: str | None = None


class DaemonStatus(str, Enum):
    """Lifecycle states of the processing daemon."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True, slots=True)
class DaemonStats:
    """Operator-facing snapshot of daemon health."""

    status: DaemonStatus
    uptime_seconds: float
    total_messages_processed: int
    total_reminders_created: int
    queue_size: int
    last_processed_timestamp: datetime
    is_processing: bool
    last_error_timestamp: datetime | None
    last_error_message: str | None


__all__ = [
    "AccessCheck",
    "DaemonState",
    "DaemonStats",
    "DaemonStatus",
    "EmailMessage",
    "ExtractionResult",
    "MatchCriteria",
    "QueueItem",
    "ReminderPriority",
    "ReminderResult",
    "ReminderTemplate",
    "Rule",
    "RuleStatus",
]
