"""Tests for keyword rule matching."""

from __future__ import annotations

from datetime import datetime, timezone

from inbox_reminders.core.models import EmailMessage, MatchCriteria, Rule
from inbox_reminders.rules import KeywordRuleMatcher


def _message(**overrides: str) -> EmailMessage:
    values = {
        "id": "gmail:1",
        "sender": "Administración <ggcc@edificio.cl>",
        "subject": "Cobro GGCC - Gastos Comunes Enero 2025",
        "body": "El monto a pagar es $45.000",
        "source_provider": "gmail",
    }
    values.update(overrides)
    return EmailMessage(timestamp=datetime(2025, 1, 20, tzinfo=timezone.utc), **values)


def _rule(name: str = "gastos_comunes", **criteria: object) -> Rule:
    return Rule(name=name, prompt="Extrae", criteria=MatchCriteria(**criteria))


def test_rule_without_criteria_matches_everything() -> None:
    assert KeywordRuleMatcher().match(_message(), [_rule()]) == ["gastos_comunes"]


def test_all_criteria_must_pass() -> None:
    matcher = KeywordRuleMatcher()
    rules = [
        _rule("por_asunto", subject_contains=("gastos comunes",)),
        _rule("por_cuerpo", body_contains=("tracking",)),
        _rule("ambos", subject_contains=("ggcc",), body_contains=("MONTO",)),
    ]

    assert matcher.match(_message(), rules) == ["por_asunto", "ambos"]


def test_sender_contains_and_domain() -> None:
    matcher = KeywordRuleMatcher()
    rules = [
        _rule("dominio", from_domains=("edificio.cl",)),
        _rule("otro_dominio", from_domains=("amazon.com",)),
        _rule("remitente", from_contains=("GGCC@",)),
    ]

    assert matcher.match(_message(), rules) == ["dominio", "remitente"]


def test_domain_criterion_fails_without_address() -> None:
    rule = _rule(from_domains=("edificio.cl",))

    assert KeywordRuleMatcher().match(_message(sender="Administración"), [rule]) == []


def test_empty_sender_passes_sender_criteria() -> None:
    rule = _rule(from_contains=("ggcc",), from_domains=("edificio.cl",))

    assert KeywordRuleMatcher().match(_message(sender=""), [rule]) == ["gastos_comunes"]


def test_subject_regex_is_case_insensitive() -> None:
    matcher = KeywordRuleMatcher()

    assert matcher.match(_message(), [_rule(subject_regex=r"enero\s+\d{4}")])
    assert not matcher.match(_message(), [_rule(subject_regex=r"^factura")])


def test_invalid_regex_does_not_match() -> None:
    assert KeywordRuleMatcher().match(_message(), [_rule(subject_regex="(unclosed")]) == []


def test_provider_must_be_listed() -> None:
    rule = Rule(name="solo_icloud", prompt="Extrae", providers=("icloud",))

    assert KeywordRuleMatcher().match(_message(), [rule]) == []
    assert KeywordRuleMatcher().match(_message(source_provider="icloud"), [rule]) == [
        "solo_icloud"
    ]


def test_explain_reports_each_criterion() -> None:
    rule = _rule(subject_contains=("gastos",), body_contains=("vencimiento",))

    assert KeywordRuleMatcher().explain(_message(), rule) == {
        "provider": True,
        "sender": True,
        "subject": True,
        "body": False,
    }
