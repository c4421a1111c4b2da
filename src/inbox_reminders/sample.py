"""Dry-run a sample email through matching, extraction and reminder rendering."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any

from inbox_reminders.core.datetime_utils import utc_now
from inbox_reminders.core.interfaces import FieldExtractor
from inbox_reminders.core.models import EmailMessage, Rule
from inbox_reminders.daemon.processor import CONFIDENCE_THRESHOLD
from inbox_reminders.reminders import compute_reminder_due, render_title
from inbox_reminders.rules import KeywordRuleMatcher

DEFAULT_SUBJECT = "Cobro GGCC - Gastos Comunes Enero 2025"
DEFAULT_SENDER = "ggcc@edificio.cl"
DEFAULT_BODY = (
    "Estimado propietario,\n\n"
    "Se informa que el monto de gastos comunes para enero 2025 es de $45.000.\n\n"
    "Fecha de vencimiento: 15 de febrero de 2025.\n\n"
    "Saludos cordiales,\nAdministración"
)


@dataclass(slots=True)
class RulePreview:
    """What the daemon would do with the sample for one rule."""

    rule_name: str
    matched: bool
    criteria: dict[str, bool]
    fields: dict[str, Any] = field(default_factory=dict)
    confidence: int | None = None
    method: str | None = None
    would_create: bool = False
    title: str | None = None
    list_name: str | None = None
    due: datetime | None = None


def build_sample_email(
    *,
    subject: str | None = None,
    sender: str | None = None,
    body: str | None = None,
    provider: str = "gmail",
) -> EmailMessage:
    now = utc_now()
    return EmailMessage(
        id=f"sample:{int(now.timestamp() * 1000)}",
        sender=sender or DEFAULT_SENDER,
        subject=subject or DEFAULT_SUBJECT,
        body=body or DEFAULT_BODY,
        timestamp=now,
        source_provider=provider,
    )


def preview_sample(
    message: EmailMessage,
    rules: Sequence[Rule],
    *,
    extractor: FieldExtractor,
    tz: tzinfo,
    matcher: KeywordRuleMatcher | None = None,
    now: datetime | None = None,
) -> list[RulePreview]:
    """Evaluate every rule against ``message`` without creating reminders."""
    matcher = matcher or KeywordRuleMatcher()
    now = now or utc_now()
    previews: list[RulePreview] = []
    for rule in rules:
        criteria = matcher.explain(message, rule)
        preview = RulePreview(rule_name=rule.name, matched=all(criteria.values()), criteria=criteria)
        if preview.matched:
            result = extractor.extract(message, rule)
            template = rule.reminder_template
            preview.fields = dict(result.fields)
            preview.confidence = result.confidence
            preview.method = result.method
            preview.would_create = result.confidence >= CONFIDENCE_THRESHOLD
            preview.title = render_title(template.title_template, result.fields)
            preview.list_name = template.list_name
            preview.due = compute_reminder_due(result.fields, template, now=now, tz=tz)
        previews.append(preview)
    return previews


__all__ = [
    "DEFAULT_BODY",
    "DEFAULT_SENDER",
    "DEFAULT_SUBJECT",
    "RulePreview",
    "build_sample_email",
    "preview_sample",
]
