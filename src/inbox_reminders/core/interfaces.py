"""Protocol interfaces for decoupling the daemon from its collaborators."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .models import (
    AccessCheck,
    EmailMessage,
    ExtractionResult,
    ReminderResult,
    ReminderTemplate,
    Rule,
    RuleStatus,
)


class NotAuthenticatedError(RuntimeError):
    """Raised when a mail source is used before it finished initializing."""


class NotRunningError(RuntimeError):
    """Raised when an operation requires a running daemon."""


class DaemonStartupError(RuntimeError):
    """Raised when the daemon cannot reach the collaborators it needs."""


class RuleStoreError(RuntimeError):
    """Raised when the rule document cannot be read or updated."""


class RuleStore(Protocol):
    """Source of named rules; safe to call every cycle."""

    def load_rules(self) -> list[Rule]:
        """Return every valid rule in the document."""
        raise NotImplementedError

    def get_active_rules(self) -> list[Rule]:
        """Return only rules whose status is ``active``."""
        raise NotImplementedError

    def update_rule_status(self, name: str, status: RuleStatus) -> None:
        """Persist a new status for the named rule."""
        raise NotImplementedError


class MailSource(Protocol):
    """Abstraction over one mail provider account."""

    provider: str

    def initialize(self) -> None:
        """Authenticate and connect; idempotent, raises on failure."""
        raise NotImplementedError

    def is_ready(self) -> bool:
        """Return ``True`` once :meth:`initialize` succeeded."""
        raise NotImplementedError

    def get_emails(self, *, limit: int) -> list[EmailMessage]:
        """Return up to ``limit`` recent messages, newest first."""
        raise NotImplementedError


class RuleMatcher(Protocol):
    """Pure function deciding which rules apply to a message."""

    def match(self, message: EmailMessage, rules: Sequence[Rule]) -> list[str]:
        """Return the names of matching rules."""
        raise NotImplementedError


class FieldExtractor(Protocol):
    """Extract structured fields from a message for one rule."""

    def extract(self, message: EmailMessage, rule: Rule) -> ExtractionResult:
        """Return the extracted fields and a 0-100 confidence score."""
        raise NotImplementedError


class ReminderSink(Protocol):
    """Task-list application receiving reminders."""

    def test_access(self) -> AccessCheck:
        """Check that reminders can be created."""
        raise NotImplementedError

    def create_reminder_from_extracted_data(
        self,
        fields: Mapping[str, Any],
        template: ReminderTemplate,
        source_message_id: str,
    ) -> ReminderResult:
        """Create a reminder from extracted fields and a rule template."""
        raise NotImplementedError


__all__ = [
    "DaemonStartupError",
    "FieldExtractor",
    "MailSource",
    "NotAuthenticatedError",
    "NotRunningError",
    "ReminderSink",
    "RuleMatcher",
    "RuleStore",
    "RuleStoreError",
]
