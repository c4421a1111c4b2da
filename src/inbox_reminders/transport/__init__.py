"""Transport adapters for external mailbox providers."""

from .imap_client import ImapClient, ImapError, MessageChunk
from .mail_source import ImapMailSource

__all__ = ["ImapClient", "ImapError", "ImapMailSource", "MessageChunk"]
