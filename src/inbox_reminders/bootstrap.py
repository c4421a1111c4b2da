"""Assemble the daemon and its collaborators from application settings."""

from __future__ import annotations

import logging

from inbox_reminders.core.config import AppSettings
from inbox_reminders.core.container import (
    DAEMON,
    FIELD_EXTRACTOR,
    MAIL_SOURCES,
    REMINDER_SINK,
    RULE_MATCHER,
    RULE_STORE,
    SETTINGS,
    ServiceContainer,
)
from inbox_reminders.core.interfaces import FieldExtractor
from inbox_reminders.daemon import ProcessingDaemon, StateStore
from inbox_reminders.extraction import LlmFieldExtractor, OllamaClient, PatternFieldExtractor
from inbox_reminders.reminders import AppleRemindersSink
from inbox_reminders.rules import KeywordRuleMatcher, MarkdownRuleStore
from inbox_reminders.transport import ImapMailSource

LOGGER = logging.getLogger(__name__)


def build_container(settings: AppSettings) -> ServiceContainer:
    """Register default factories; callers may override any key before resolving."""
    container = ServiceContainer()
    container.register_instance(SETTINGS, settings)
    container.register(RULE_STORE, lambda c: MarkdownRuleStore(c.resolve(SETTINGS).rules.path))
    container.register(RULE_MATCHER, lambda _c: KeywordRuleMatcher())
    container.register(FIELD_EXTRACTOR, lambda c: _build_extractor(c.resolve(SETTINGS)))
    container.register(
        REMINDER_SINK, lambda c: AppleRemindersSink(c.resolve(SETTINGS).reminders)
    )
    container.register(MAIL_SOURCES, lambda c: _build_mail_sources(c.resolve(SETTINGS)))
    container.register(DAEMON, _build_daemon)
    return container


def build_daemon(settings: AppSettings) -> ProcessingDaemon:
    return build_container(settings).resolve(DAEMON)


def _build_daemon(container: ServiceContainer) -> ProcessingDaemon:
    settings: AppSettings = container.resolve(SETTINGS)
    return ProcessingDaemon(
        settings.daemon,
        rule_store=container.resolve(RULE_STORE),
        mail_sources=container.resolve(MAIL_SOURCES),
        matcher=container.resolve(RULE_MATCHER),
        extractor=container.resolve(FIELD_EXTRACTOR),
        reminder_sink=container.resolve(REMINDER_SINK),
        state_store=StateStore(settings.daemon.state_file),
    )


def _build_extractor(settings: AppSettings) -> FieldExtractor:
    if settings.llm.enabled:
        LOGGER.info("Using LLM field extraction via %s", settings.llm.base_url)
        return LlmFieldExtractor(OllamaClient(settings.llm))
    return PatternFieldExtractor()


def _build_mail_sources(settings: AppSettings) -> list[ImapMailSource]:
    providers = settings.enabled_providers()
    if not providers:
        LOGGER.warning("No mail providers configured; set username and app password")
    return [ImapMailSource(name, provider) for name, provider in providers.items()]


__all__ = ["build_container", "build_daemon"]
