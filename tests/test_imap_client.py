"""Tests for the IMAP transport adapter."""

# pylint: disable=protected-access

from __future__ import annotations

import imaplib
from unittest.mock import MagicMock

import pytest

from inbox_reminders.core.config import ProviderSettings
from inbox_reminders.transport import ImapClient, ImapError


def _settings(**overrides: object) -> ProviderSettings:
    values: dict[str, object] = {
        "host": "imap.test",
        "port": 993,
        "username": "user",
        "app_password": "password",
        "mailbox": "INBOX",
        "use_ssl": True,
    }
    values.update(overrides)
    return ProviderSettings(**values)


def test_fetch_latest_returns_newest_first() -> None:
    client = ImapClient(_settings())

    mock_connection = MagicMock()

    def uid(command, *args):
        if command == "SEARCH":
            return "OK", [b"101 103 102"]
        if command == "FETCH":
            uid_arg = args[0]
            return "OK", [(b"", f"raw-{uid_arg}".encode())]
        raise AssertionError("Unexpected IMAP command")

    mock_connection.uid.side_effect = uid

    client._connection = mock_connection  # type: ignore[attr-defined]

    chunks = client.fetch_latest(2)

    assert [chunk.uid for chunk in chunks] == [103, 102]
    assert chunks[0].raw == b"raw-103"
    mock_connection.uid.assert_any_call("SEARCH", None, "ALL")
    mock_connection.uid.assert_any_call("FETCH", "103", "(RFC822)")
    mock_connection.uid.assert_any_call("FETCH", "102", "(RFC822)")
    assert mock_connection.uid.call_count == 3


def test_fetch_latest_skips_missing_payloads() -> None:
    client = ImapClient(_settings())
    mock_connection = MagicMock()
    mock_connection.uid.side_effect = [("OK", [b"5"]), ("OK", [b")"])]
    client._connection = mock_connection  # type: ignore[attr-defined]

    assert client.fetch_latest(10) == []


def test_fetch_latest_wraps_protocol_errors() -> None:
    client = ImapClient(_settings())
    mock_connection = MagicMock()
    mock_connection.uid.side_effect = imaplib.IMAP4.abort("socket closed")
    client._connection = mock_connection  # type: ignore[attr-defined]

    with pytest.raises(ImapError, match="while fetching"):
        client.fetch_latest(5)


def test_fetch_latest_requires_connection() -> None:
    with pytest.raises(ImapError, match="not been established"):
        ImapClient(_settings()).fetch_latest(5)


def test_connect_logs_in_and_selects_readonly(monkeypatch: pytest.MonkeyPatch) -> None:
    factory = MagicMock()
    connection = factory.return_value
    connection.select.return_value = ("OK", [b"12"])
    monkeypatch.setattr(imaplib, "IMAP4_SSL", factory)

    with ImapClient(_settings()) as client:
        assert client.is_connected
        factory.assert_called_once_with("imap.test", 993)
        connection.login.assert_called_once_with("user", "password")
        connection.select.assert_called_once_with("INBOX", readonly=True)

    assert not client.is_connected
    connection.logout.assert_called_once()


def test_connect_requires_credentials() -> None:
    with pytest.raises(ImapError, match="credentials"):
        ImapClient(_settings(app_password=None)).connect()


def test_connect_wraps_network_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(imaplib, "IMAP4_SSL", MagicMock(side_effect=OSError("unreachable")))
    client = ImapClient(_settings())

    with pytest.raises(ImapError, match="imap.test"):
        client.connect()
    assert not client.is_connected
