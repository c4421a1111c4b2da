"""Keyword based matching of messages against rule criteria."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from functools import lru_cache

from inbox_reminders.core.models import EmailMessage, Rule

LOGGER = logging.getLogger(__name__)

_DOMAIN_PATTERN = re.compile(r"@([^>\s]+)")


class KeywordRuleMatcher:
    """Case-insensitive matcher; a rule matches when every criterion passes."""

    def match(self, message: EmailMessage, rules: Sequence[Rule]) -> list[str]:
        matched = [rule.name for rule in rules if all(self.explain(message, rule).values())]
        if matched:
            LOGGER.debug(
                "Email %s (%s) matched rules: %s",
                message.id,
                message.subject,
                ", ".join(matched),
            )
        return matched

    def explain(self, message: EmailMessage, rule: Rule) -> dict[str, bool]:
        """Return the outcome of each criterion for ``rule``."""
        criteria = rule.criteria
        return {
            "provider": _matches_provider(message, rule),
            "sender": _matches_sender(message.sender, criteria.from_contains, criteria.from_domains),
            "subject": _contains_any(message.subject, criteria.subject_contains)
            and _matches_regex(message.subject, criteria.subject_regex),
            "body": _contains_any(message.body, criteria.body_contains),
        }


def _matches_provider(message: EmailMessage, rule: Rule) -> bool:
    return message.source_provider.lower() in {p.lower() for p in rule.providers}


def _matches_sender(sender: str, contains: Iterable[str], domains: Sequence[str]) -> bool:
    if not sender:
        return True
    if not _contains_any(sender, contains):
        return False
    if not domains:
        return True
    found = _DOMAIN_PATTERN.search(sender)
    if not found:
        LOGGER.debug("Could not extract domain from '%s'", sender)
        return False
    domain = found.group(1).lower()
    return any(candidate.lower() in domain for candidate in domains)


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    terms = list(terms)
    if not terms:
        return True
    lowered = (text or "").lower()
    return any(term.lower() in lowered for term in terms)


def _matches_regex(text: str, pattern: str | None) -> bool:
    if not pattern:
        return True
    compiled = _compile(pattern)
    if compiled is None:
        return False
    return compiled.search(text or "") is not None


@lru_cache(maxsize=128)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        LOGGER.warning("Invalid subject regex %r: %s", pattern, exc)
        return None


__all__ = ["KeywordRuleMatcher"]
