"""Utilities for parsing raw RFC822 messages into :class:`EmailMessage` models."""

from __future__ import annotations

import html
import re
from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.message import EmailMessage as MimeMessage
from email.parser import BytesParser
from email.utils import parsedate_to_datetime

from inbox_reminders.core.datetime_utils import ensure_utc, utc_now
from inbox_reminders.core.models import EmailMessage

_TAG = re.compile(r"<[^>]+>")
_STYLE_OR_SCRIPT = re.compile(r"<(style|script)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_BLANK_RUNS = re.compile(r"[ \t]+")


class EmailParser:
    """Convert raw email payloads into normalized messages."""

    def __init__(self) -> None:
        self._parser = BytesParser(policy=policy.default)

    def parse(self, uid: int | str, payload: bytes, provider: str) -> EmailMessage:
        """Parse raw RFC822 bytes; the id is ``"<provider>:<uid>"``."""
        message = self._parser.parsebytes(payload)
        body_text, body_html = _extract_bodies(message)
        if body_text:
            body = body_text
        elif body_html:
            body = strip_html(body_html)
        else:
            body = ""

        return EmailMessage(
            id=f"{provider}:{uid}",
            sender=str(message.get("From") or ""),
            subject=str(message.get("Subject") or ""),
            body=body,
            timestamp=_try_parse_datetime(message.get("Date")) or utc_now(),
            source_provider=provider,
        )


def strip_html(payload: str) -> str:
    """Reduce an HTML body to readable text."""
    without_blocks = _STYLE_OR_SCRIPT.sub(" ", payload)
    text = html.unescape(_TAG.sub(" ", without_blocks))
    lines = (_BLANK_RUNS.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def _collapse_chunks(chunks: Iterable[str], separator: str) -> str | None:
    filtered_chunks = [chunk for chunk in chunks if chunk]
    if not filtered_chunks:
        return None
    return separator.join(filtered_chunks)


def _extract_bodies(message: MimeMessage) -> tuple[str | None, str | None]:
    plain_chunks: list[str] = []
    html_chunks: list[str] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        try:
            content_obj = part.get_content()
        except LookupError:
            continue
        if not isinstance(content_obj, str):
            continue
        content = content_obj.strip()
        content_type = part.get_content_type()
        if content_type == "text/plain":
            plain_chunks.append(content)
        elif content_type == "text/html":
            html_chunks.append(content)

    return _collapse_chunks(plain_chunks, "\n\n"), _collapse_chunks(html_chunks, "\n")


def _try_parse_datetime(header_value: str | None) -> datetime | None:
    if header_value is None:
        return None
    try:
        return ensure_utc(parsedate_to_datetime(str(header_value)))
    except (TypeError, ValueError):
        return None


__all__ = ["EmailParser", "strip_html"]
