"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class ProviderSettings(BaseModel):
    """Settings controlling IMAP connectivity for one mail provider."""

    host: str = Field(default="imap.gmail.com", description="IMAP hostname")
    port: int = Field(default=993, description="IMAP port, typically 993 for SSL")
    username: str | None = Field(default=None, description="Account username")
    app_password: str | None = Field(
        default=None, description="App-specific password"
    )
    mailbox: str = Field(default="INBOX", description="Mailbox to monitor")
    use_ssl: bool = Field(default=True, description="Whether to enforce SSL")

    @property
    def enabled(self) -> bool:
        """Providers are enabled only when credentials are present."""
        return bool(self.username) and bool(self.app_password)


def _icloud_defaults() -> ProviderSettings:
    return ProviderSettings(host="imap.mail.me.com")


class DaemonSettings(BaseModel):
    """Settings controlling the processing daemon schedule and retries."""

    interval_minutes: float = Field(
        default=30, gt=0, description="Minutes between scheduled cycles"
    )
    max_emails_per_scan: int = Field(
        default=50, ge=1, description="Ceiling on messages fetched per cycle"
    )
    retry_attempts: int = Field(
        default=3, ge=1, description="Attempts before a queue item is dropped"
    )
    state_file: Path = Field(
        default=Path("./.email-daemon-state.json"),
        description="JSON file holding the persisted daemon state",
    )


class RulesSettings(BaseModel):
    """Location of the Markdown rules document."""

    path: Path = Field(
        default=Path("./Email Rules.md"), description="Rules document path"
    )


class RemindersSettings(BaseModel):
    """Output list and timezone defaults for Apple Reminders."""

    default_list: str = Field(default="Facturas", description="Fallback list")
    timezone: str = Field(
        default="America/Santiago", description="IANA timezone for due dates"
    )
    osascript_path: str = Field(default="osascript", description="osascript binary")
    timeout_seconds: int = Field(
        default=30, ge=1, description="Timeout for a single AppleScript call"
    )


class LlmSettings(BaseModel):
    """Settings for the optional local LLM extractor."""

    enabled: bool = Field(
        default=False, description="Use the LLM extractor before regex fallback"
    )
    base_url: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    model: str = Field(default="gpt-oss:20b", description="Model identifier")
    timeout_seconds: int = Field(
        default=30, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for LLM completions",
    )
    max_output_tokens: int | None = Field(
        default=1000,
        ge=32,
        description="Maximum tokens to request from the provider",
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class WebSettings(BaseModel):
    """Settings for the control API."""

    host: str = Field(default="127.0.0.1", description="Bind address for serve")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port")
    api_token: str | None = Field(
        default=None, description="Token required in the X-API-Token header"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    gmail: ProviderSettings = Field(default_factory=ProviderSettings)
    icloud: ProviderSettings = Field(default_factory=_icloud_defaults)
    daemon: DaemonSettings = Field(default_factory=DaemonSettings)
    rules: RulesSettings = Field(default_factory=RulesSettings)
    reminders: RemindersSettings = Field(default_factory=RemindersSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    web: WebSettings = Field(default_factory=WebSettings)

    def enabled_providers(self) -> dict[str, ProviderSettings]:
        """Return provider settings keyed by name for configured accounts."""
        candidates = {"gmail": self.gmail, "icloud": self.icloud}
        return {name: value for name, value in candidates.items() if value.enabled}


ENV_PREFIX = "INBOX_REMINDERS_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    *,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "DaemonSettings",
    "LlmSettings",
    "LoggingSettings",
    "ProviderSettings",
    "RemindersSettings",
    "RulesSettings",
    "WebSettings",
    "load_app_settings",
]
