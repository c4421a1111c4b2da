"""Prompt templates for LLM field extraction."""

from __future__ import annotations

from textwrap import dedent

from inbox_reminders.core.models import EmailMessage, Rule

from .patterns import GENERIC_RULE, REQUIRED_FIELDS

MAX_BODY_CHARS = 6000


def build_extraction_prompt(message: EmailMessage, rule: Rule) -> str:
    """Compose a JSON-only extraction prompt from the rule's instructions."""
    required = REQUIRED_FIELDS.get(rule.name, REQUIRED_FIELDS[GENERIC_RULE])
    keys = ", ".join(f'"{name}"' for name in required)
    body = message.body[:MAX_BODY_CHARS]
    subject = message.subject or "(sin asunto)"
    sender = message.sender or "(remitente desconocido)"

    # Interpolated values are appended after dedent so multi-line bodies
    # do not defeat the common-indent detection.
    header = f"""
    Eres un asistente que extrae datos estructurados de emails en Chile.
    Responde SOLO con un objeto JSON valido, sin texto adicional.
    Incluye siempre las claves {keys}; usa null cuando un dato no exista.
    Fechas en formato YYYY-MM-DD. Montos solo con digitos, sin puntos ni comas.

    Instrucciones de la regla "{rule.name}":
    """
    email_block = f"From: {sender}\nSubject: {subject}\nBody:\n{body}"
    return f"{dedent(header).strip()}\n{rule.prompt.strip()}\n\nEmail:\n{email_block}"


__all__ = ["build_extraction_prompt"]
