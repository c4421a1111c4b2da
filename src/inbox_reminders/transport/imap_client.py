"""IMAP transport adapter providing mailbox access."""

from __future__ import annotations

import imaplib
import logging
from dataclasses import dataclass
from types import TracebackType

from inbox_reminders.core.config import ProviderSettings

LOGGER = logging.getLogger(__name__)


class ImapError(RuntimeError):
    """Wrap low level IMAP errors with additional context."""


@dataclass(frozen=True, slots=True)
class MessageChunk:
    """Raw RFC822 payload addressed by mailbox UID."""

    uid: int
    raw: bytes


class ImapClient:
    """Thin wrapper around ``imaplib`` for one provider account."""

    def __init__(self, settings: ProviderSettings) -> None:
        self._settings = settings
        self._connection: imaplib.IMAP4 | imaplib.IMAP4_SSL | None = None

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> ImapClient:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # Public API ---------------------------------------------------------------
    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def connect(self) -> None:
        """Establish the IMAP connection and select the configured mailbox."""
        if self._connection is not None:
            return

        username = self._settings.username
        password = self._settings.app_password
        if not username or not password:
            raise ImapError("IMAP credentials are not configured")

        try:
            if self._settings.use_ssl:
                LOGGER.debug(
                    "Connecting to IMAP host %s:%s via SSL",
                    self._settings.host,
                    self._settings.port,
                )
                connection: imaplib.IMAP4 | imaplib.IMAP4_SSL = imaplib.IMAP4_SSL(
                    self._settings.host, self._settings.port
                )
            else:
                LOGGER.debug(
                    "Connecting to IMAP host %s:%s without SSL",
                    self._settings.host,
                    self._settings.port,
                )
                connection = imaplib.IMAP4(self._settings.host, self._settings.port)

            LOGGER.debug("Authenticating as %s", username)
            connection.login(username, password)
            status, _ = connection.select(self._settings.mailbox, readonly=True)
            if status != "OK":
                raise ImapError(f"Unable to select mailbox '{self._settings.mailbox}'")
            self._connection = connection
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ImapError(
                f"Failed to connect to IMAP server {self._settings.host}"
            ) from exc

    def fetch_latest(self, limit: int) -> list[MessageChunk]:
        """Return up to ``limit`` messages with the highest UIDs, newest first."""
        connection = self._require_connection()
        try:
            status, data = connection.uid("SEARCH", None, "ALL")  # type: ignore[arg-type]
            if status != "OK":
                raise ImapError("Failed to search for message UIDs")

            raw_ids = data[0].split() if data and data[0] else []
            if not raw_ids or limit <= 0:
                LOGGER.debug("No messages found in %s", self._settings.mailbox)
                return []

            selected = sorted(raw_ids, key=int)[-limit:]
            chunks: list[MessageChunk] = []
            for uid_bytes in reversed(selected):
                uid_str = uid_bytes.decode()
                LOGGER.debug("Fetching RFC822 payload for UID %s", uid_str)
                status_fetch, fetch_data = connection.uid("FETCH", uid_str, "(RFC822)")
                if status_fetch != "OK":
                    raise ImapError(f"Failed to fetch message UID {uid_str}")
                payload = _extract_rfc822(fetch_data)
                if payload is None:
                    LOGGER.warning("No RFC822 payload returned for UID %s", uid_str)
                    continue
                chunks.append(MessageChunk(uid=int(uid_str), raw=payload))
            return chunks
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ImapError("IMAP error while fetching messages") from exc

    def close(self) -> None:
        """Terminate the IMAP session cleanly."""
        if self._connection is None:
            return
        try:
            LOGGER.debug("Closing IMAP connection")
            self._connection.close()
        except imaplib.IMAP4.error:
            LOGGER.debug("IMAP close raised; continuing with logout")
        finally:
            try:
                self._connection.logout()
            except (imaplib.IMAP4.error, OSError):
                LOGGER.debug("IMAP logout raised; suppressing during shutdown")
            self._connection = None

    # Internal helpers ---------------------------------------------------------
    def _require_connection(self) -> imaplib.IMAP4 | imaplib.IMAP4_SSL:
        if self._connection is None:
            raise ImapError("IMAP connection has not been established")
        return self._connection


def _extract_rfc822(fetch_data: list[tuple[bytes, bytes] | bytes]) -> bytes | None:
    """Extract the RFC822 payload from ``imaplib`` response chunks."""
    for entry in fetch_data:
        if isinstance(entry, tuple) and len(entry) == 2:
            return entry[1]
    return None


__all__ = ["ImapClient", "ImapError", "MessageChunk"]
