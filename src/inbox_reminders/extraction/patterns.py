"""Regex extraction of reminder fields from Spanish billing and delivery emails."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from inbox_reminders.core.models import EmailMessage, ExtractionResult, Rule

LOGGER = logging.getLogger(__name__)

GENERIC_RULE = "generic"

SPANISH_MONTHS = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "gastos_comunes": ("monto", "vencimiento", "periodo", "tipo"),
    "facturas_servicios": ("empresa", "monto", "vencimiento", "tipo"),
    "entregas_amazon": ("tracking", "fechaEntrega", "proveedor", "tipo"),
    GENERIC_RULE: ("tipo",),
}

# Fields whose joint presence earns the completeness bonus.
_BONUS_FIELDS: dict[str, tuple[str, ...]] = {
    "gastos_comunes": ("monto", "vencimiento", "periodo"),
    "facturas_servicios": ("empresa", "monto", "vencimiento"),
    "entregas_amazon": ("tracking", "fechaEntrega"),
}

_MONTH_NAMES = "|".join(SPANISH_MONTHS)
_AMOUNT_WITH_SIGN = re.compile(r"\$\s*(\d[\d.,]*)")
_AMOUNT_WITH_WORD = re.compile(r"(\d[\d.,]*)\s*pesos", re.IGNORECASE)
_SPANISH_DATE = re.compile(
    rf"(\d{{1,2}})\s+de\s+({_MONTH_NAMES})(?:\s+(?:de(?:l)?\s+)?(\d{{4}}))?",
    re.IGNORECASE,
)
_NUMERIC_DATE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4})\b")
_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_PERIOD_IN_SUBJECT = re.compile(rf"\b({_MONTH_NAMES})\b(?:\s+(?:de(?:l)?\s+)?(\d{{4}}))?", re.IGNORECASE)
_PERIOD_IN_BODY = re.compile(
    rf"del\s+mes\s+de\s+({_MONTH_NAMES})(?:\s+(?:de(?:l)?\s+)?(\d{{4}}))?", re.IGNORECASE
)
_TRACKING = re.compile(r"\bTRK[A-Z0-9]+\b|\b[A-Z]{3}[0-9]{9}[A-Z0-9]*\b")
_SENDER_DOMAIN = re.compile(r"@([\w-]+)\.")


# Public API -----------------------------------------------------------------


def score_confidence(fields: Mapping[str, Any], rule_name: str) -> int:
    """Return the 0-100 share of required fields present, plus a completeness bonus."""
    family = rule_name if rule_name in REQUIRED_FIELDS else GENERIC_RULE
    required = REQUIRED_FIELDS[family]
    present = sum(1 for name in required if _has_value(fields.get(name)))
    confidence = round(present * 100 / len(required))

    bonus_fields = _BONUS_FIELDS.get(family)
    if confidence >= 75 and bonus_fields:
        if all(_has_value(fields.get(name)) for name in bonus_fields):
            confidence = min(100, confidence + 10)
    return confidence


def parse_amount(text: str) -> str | None:
    """Return the first CLP amount as a digit string (separators removed)."""
    match = _AMOUNT_WITH_SIGN.search(text) or _AMOUNT_WITH_WORD.search(text)
    if not match:
        return None
    digits = re.sub(r"[.,]", "", match.group(1))
    return digits or None


def parse_due_date(text: str, *, default_year: int | None = None) -> str | None:
    """Return the first recognisable date in ``text`` as ``YYYY-MM-DD``.

    Understands ``15 de febrero de 2025``, ``15/02/2025`` and ISO dates. A
    Spanish date without a year uses ``default_year`` when given.
    """
    for match in _SPANISH_DATE.finditer(text):
        day, month_name, year = match.groups()
        if year is None and default_year is None:
            continue
        iso = _to_iso(int(year or default_year), SPANISH_MONTHS[month_name.lower()], int(day))
        if iso:
            return iso

    numeric = _NUMERIC_DATE.search(text)
    if numeric:
        day, month, year = (int(part) for part in numeric.groups())
        iso = _to_iso(year, month, day)
        if iso:
            return iso

    iso_match = _ISO_DATE.search(text)
    if iso_match:
        year, month, day = (int(part) for part in iso_match.groups())
        return _to_iso(year, month, day)
    return None


class PatternFieldExtractor:
    """Deterministic extractor keyed by rule family, scored by field coverage."""

    method = "pattern"

    def __init__(self) -> None:
        self._strategies: dict[str, Callable[[EmailMessage], dict[str, Any]]] = {
            "gastos_comunes": _extract_building_fees,
            "facturas_servicios": _extract_utility_bill,
            "entregas_amazon": _extract_delivery,
        }

    def extract(self, message: EmailMessage, rule: Rule) -> ExtractionResult:
        strategy = self._strategies.get(rule.name, _extract_generic)
        fields = strategy(message)
        confidence = score_confidence(fields, rule.name)
        LOGGER.debug(
            "Pattern extraction for email %s with rule %s: confidence=%s",
            message.id,
            rule.name,
            confidence,
        )
        return ExtractionResult(
            rule_name=rule.name,
            fields=fields,
            confidence=confidence,
            method=self.method,
        )


# Strategies -----------------------------------------------------------------


def _extract_building_fees(message: EmailMessage) -> dict[str, Any]:
    return {
        "monto": parse_amount(message.body),
        "vencimiento": parse_due_date(message.body),
        "periodo": _parse_period(message.subject, message.body),
        "tipo": "gastos_comunes",
        "edificio": None,
    }


def _extract_utility_bill(message: EmailMessage) -> dict[str, Any]:
    return {
        "empresa": _company_from_sender(message.sender),
        "monto": parse_amount(message.body),
        "vencimiento": parse_due_date(message.body),
        "tipo": "factura_servicios",
        "servicio": None,
    }


def _extract_delivery(message: EmailMessage) -> dict[str, Any]:
    tracking = _TRACKING.search(message.body)
    return {
        "tracking": tracking.group(0) if tracking else None,
        "fechaEntrega": parse_due_date(message.body, default_year=message.timestamp.year),
        "proveedor": "Amazon",
        "tipo": "entrega",
        "producto": None,
    }


def _extract_generic(message: EmailMessage) -> dict[str, Any]:
    return {
        "tipo": GENERIC_RULE,
        "sender": message.sender,
        "subject": message.subject,
        "fechaImportante": parse_due_date(message.body),
        "monto": parse_amount(message.body),
        "resumen": message.subject,
    }


# Helpers --------------------------------------------------------------------


def _parse_period(subject: str, body: str) -> str | None:
    match = _PERIOD_IN_SUBJECT.search(subject) or _PERIOD_IN_BODY.search(body)
    if not match:
        return None
    month, year = match.groups()
    return f"{month.lower()} {year}" if year else month.lower()


def _company_from_sender(sender: str) -> str | None:
    match = _SENDER_DOMAIN.search(sender)
    if not match:
        return None
    name = match.group(1)
    return name[:1].upper() + name[1:]


def _to_iso(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _has_value(value: Any) -> bool:
    return value is not None and value != ""


__all__ = [
    "GENERIC_RULE",
    "PatternFieldExtractor",
    "REQUIRED_FIELDS",
    "SPANISH_MONTHS",
    "parse_amount",
    "parse_due_date",
    "score_confidence",
]
