"""Tests for regex field extraction and confidence scoring."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from inbox_reminders.core.models import EmailMessage, Rule
from inbox_reminders.extraction import (
    PatternFieldExtractor,
    parse_amount,
    parse_due_date,
    score_confidence,
)


def _message(subject: str, body: str, sender: str = "ggcc@edificio.cl") -> EmailMessage:
    return EmailMessage(
        id="gmail:42",
        sender=sender,
        subject=subject,
        body=body,
        timestamp=datetime(2025, 1, 20, 10, 0, tzinfo=timezone.utc),
        source_provider="gmail",
    )


def _rule(name: str) -> Rule:
    return Rule(name=name, prompt="Extrae los datos")


def test_building_fees_email_is_fully_extracted() -> None:
    message = _message(
        "Cobro GGCC - Gastos Comunes Enero 2025",
        "Estimado residente,\n"
        "El monto total a pagar es $45.000.\n"
        "La fecha de vencimiento es el 15 de febrero de 2025.",
    )

    result = PatternFieldExtractor().extract(message, _rule("gastos_comunes"))

    assert result.fields == {
        "monto": "45000",
        "vencimiento": "2025-02-15",
        "periodo": "enero 2025",
        "tipo": "gastos_comunes",
        "edificio": None,
    }
    assert result.confidence == 100
    assert result.method == "pattern"
    assert result.rule_name == "gastos_comunes"


def test_period_can_come_from_body() -> None:
    message = _message(
        "Aviso de cobro",
        "Cobro del mes de marzo 2025 por $120.500, vence el 10/04/2025",
    )

    result = PatternFieldExtractor().extract(message, _rule("gastos_comunes"))

    assert result.fields["periodo"] == "marzo 2025"
    assert result.fields["vencimiento"] == "2025-04-10"
    assert result.fields["monto"] == "120500"


def test_utility_bill_uses_sender_domain_as_company() -> None:
    message = _message(
        "Tu boleta de luz",
        "Total a pagar: 23.450 pesos. Fecha límite 2025-03-10.",
        sender="Enel Chile <facturacion@enel.cl>",
    )

    result = PatternFieldExtractor().extract(message, _rule("facturas_servicios"))

    assert result.fields["empresa"] == "Enel"
    assert result.fields["monto"] == "23450"
    assert result.fields["vencimiento"] == "2025-03-10"
    assert result.fields["tipo"] == "factura_servicios"
    assert result.confidence == 100


def test_delivery_date_without_year_uses_message_year() -> None:
    message = _message(
        "Tu pedido de Amazon fue enviado",
        "Llegará el 3 de marzo. Número de seguimiento: TRK12345ABC",
        sender="envios@amazon.com",
    )

    result = PatternFieldExtractor().extract(message, _rule("entregas_amazon"))

    assert result.fields["tracking"] == "TRK12345ABC"
    assert result.fields["fechaEntrega"] == "2025-03-03"
    assert result.fields["proveedor"] == "Amazon"
    assert result.confidence == 100


def test_unknown_rule_uses_generic_strategy() -> None:
    message = _message("Recordatorio de cita", "Su cita es el 5 de mayo de 2025")

    result = PatternFieldExtractor().extract(message, _rule("citas_medicas"))

    assert result.fields["tipo"] == "generic"
    assert result.fields["fechaImportante"] == "2025-05-05"
    assert result.fields["resumen"] == "Recordatorio de cita"
    assert result.fields["monto"] is None
    assert result.confidence == 100


def test_building_fees_without_data_scores_low() -> None:
    message = _message("Boletín del edificio", "Recuerde reciclar.")

    result = PatternFieldExtractor().extract(message, _rule("gastos_comunes"))

    assert result.confidence == 25


@pytest.mark.parametrize(
    ("fields", "rule_name", "expected"),
    [
        ({"monto": "1", "vencimiento": "2025-01-01", "tipo": "x"}, "gastos_comunes", 75),
        ({"monto": "1", "tipo": "x"}, "gastos_comunes", 50),
        ({"tracking": "T", "fechaEntrega": "2025-01-01", "tipo": "x"}, "entregas_amazon", 85),
        ({"monto": "", "tipo": "x"}, "facturas_servicios", 25),
        ({}, "cualquier_regla", 0),
    ],
)
def test_score_confidence(fields: dict[str, str], rule_name: str, expected: int) -> None:
    assert score_confidence(fields, rule_name) == expected


def test_parse_amount_variants() -> None:
    assert parse_amount("Total $ 1.234.567") == "1234567"
    assert parse_amount("Son 9.990 pesos") == "9990"
    assert parse_amount("Sin montos") is None


def test_parse_due_date_variants() -> None:
    assert parse_due_date("vence el 1 de setiembre del 2025") == "2025-09-01"
    assert parse_due_date("vence 2025-02-15") == "2025-02-15"
    assert parse_due_date("vence 31/02/2025") is None
    assert parse_due_date("vence el 15 de febrero") is None
    assert parse_due_date("vence el 15 de febrero", default_year=2026) == "2026-02-15"
