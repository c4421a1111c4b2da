"""IMAP backed mail source for a single provider account."""

from __future__ import annotations

import logging
from collections.abc import Callable

from inbox_reminders.core.config import ProviderSettings
from inbox_reminders.core.interfaces import MailSource, NotAuthenticatedError
from inbox_reminders.core.models import EmailMessage
from inbox_reminders.ingestion import EmailParser

from .imap_client import ImapClient, ImapError

LOGGER = logging.getLogger(__name__)


class ImapMailSource(MailSource):
    """Fetch and normalize recent messages from one IMAP account.

    The connection is opened by :meth:`initialize` and kept for later
    fetches. A fetch that fails on a stale connection reconnects once before
    the error is raised to the caller.
    """

    def __init__(
        self,
        provider: str,
        settings: ProviderSettings,
        *,
        client_factory: Callable[[ProviderSettings], ImapClient] = ImapClient,
        parser: EmailParser | None = None,
    ) -> None:
        self.provider = provider
        self._settings = settings
        self._client_factory = client_factory
        self._parser = parser or EmailParser()
        self._client: ImapClient | None = None

    def initialize(self) -> None:
        if self._client is not None:
            return
        client = self._client_factory(self._settings)
        client.connect()
        self._client = client
        LOGGER.info(
            "%s mailbox %s connected as %s",
            self.provider,
            self._settings.mailbox,
            self._settings.username,
        )

    def is_ready(self) -> bool:
        return self._client is not None

    def get_emails(self, *, limit: int) -> list[EmailMessage]:
        if self._client is None:
            raise NotAuthenticatedError(f"{self.provider} client not authenticated")

        try:
            chunks = self._client.fetch_latest(limit)
        except ImapError as exc:
            LOGGER.warning("%s fetch failed, reconnecting: %s", self.provider, exc)
            self._client.close()
            self._client.connect()
            chunks = self._client.fetch_latest(limit)

        messages = [
            self._parser.parse(chunk.uid, chunk.raw, self.provider) for chunk in chunks
        ]
        LOGGER.info("Retrieved %d %s emails", len(messages), self.provider)
        return messages

    def close(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None


__all__ = ["ImapMailSource"]
