"""Tests for RFC822 parsing into normalized messages."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.message import EmailMessage as MimeMessage
from pathlib import Path

from inbox_reminders.core.datetime_utils import utc_now
from inbox_reminders.ingestion import EmailParser, strip_html

FIXTURE_PATH = Path(__file__).parent / "fixtures" / "ggcc_email.eml"


def test_email_parser_extracts_headers_and_plain_body() -> None:
    payload = FIXTURE_PATH.read_bytes()
    parser = EmailParser()

    message = parser.parse(uid=101, payload=payload, provider="gmail")

    assert message.id == "gmail:101"
    assert message.source_provider == "gmail"
    assert message.sender == "Administración <ggcc@edificio.cl>"
    assert message.subject == "Cobro GGCC - Gastos Comunes Enero 2025"
    assert message.body == (
        "El monto total a pagar es $45.000.\n"
        "La fecha de vencimiento es el 15 de febrero de 2025."
    )
    assert message.timestamp == datetime(2025, 1, 20, 12, 30, tzinfo=timezone.utc)
    assert message.matched_rule_names == ()


def test_html_only_message_is_reduced_to_text() -> None:
    mime = MimeMessage()
    mime["From"] = "envios@amazon.com"
    mime["Subject"] = "Tu pedido"
    mime.set_content(
        "<html><head><style>p { color: red; }</style></head>"
        "<body><p>Llega el <b>3 de marzo</b></p><p>Tracking &amp; más</p></body></html>",
        subtype="html",
    )

    message = EmailParser().parse(7, bytes(mime), "icloud")

    assert message.id == "icloud:7"
    assert "color" not in message.body
    assert "Llega el 3 de marzo" in message.body
    assert "Tracking & más" in message.body


def test_missing_date_falls_back_to_now() -> None:
    mime = MimeMessage()
    mime["Subject"] = "Sin fecha"
    mime.set_content("Hola")

    before = utc_now() - timedelta(seconds=1)
    message = EmailParser().parse(1, bytes(mime), "gmail")

    assert message.timestamp >= before
    assert message.sender == ""
    assert message.body == "Hola"


def test_strip_html_collapses_whitespace() -> None:
    html = "<div>Monto:   <strong>$45.000</strong></div>\n\n<script>alert(1)</script><p>Fin</p>"

    assert strip_html(html) == "Monto: $45.000\nFin"
