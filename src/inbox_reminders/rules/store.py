"""Rule store backed by a Markdown "Email Rules" document."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from inbox_reminders.core.interfaces import RuleStore, RuleStoreError
from inbox_reminders.core.models import Rule, RuleStatus

LOGGER = logging.getLogger(__name__)

_RULE_HEADER = re.compile(r"^###\s+Rule:\s*(?P<name>.+?)\s*$")
_BULLET = re.compile(r"^[-*]\s+\*\*(?P<key>[^*]+)\*\*:\s*(?P<value>.*)$")
_PROMPT_MARKERS = {"**prompt:**", "prompt:"}

_STATUS_ICONS: dict[RuleStatus, str] = {
    "active": "✅",
    "paused": "⏸️",
    "disabled": "❌",
}

_CRITERIA_KEYS = {
    "from contains": "from_contains",
    "from domains": "from_domains",
    "subject contains": "subject_contains",
    "body contains": "body_contains",
}

_TEMPLATE_KEYS = {
    "title template": "title_template",
    "list": "list_name",
    "priority": "priority",
    "days before": "days_before_reminder",
    "time": "time_of_day",
}


class MarkdownRuleStore(RuleStore):
    """Parse ``### Rule: name`` sections into validated :class:`Rule` objects.

    Parsed rules are cached until the file's modification time changes.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._cached: list[Rule] = []
        self._cached_mtime: int | None = None

    def load_rules(self) -> list[Rule]:
        """Return every valid rule, re-reading the file only when it changed."""
        try:
            mtime = self._path.stat().st_mtime_ns
        except FileNotFoundError:
            LOGGER.warning("Rules file not found: %s", self._path)
            return []
        except OSError as exc:
            raise RuleStoreError(f"Failed to stat rules file {self._path}") from exc

        if self._cached_mtime == mtime:
            LOGGER.debug("Using cached rules (no changes detected)")
            return list(self._cached)

        try:
            content = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RuleStoreError(f"Failed to read rules file {self._path}") from exc

        rules = parse_rules(content)
        self._cached = rules
        self._cached_mtime = mtime
        LOGGER.info("Loaded %d valid rules from %s", len(rules), self._path)
        return list(rules)

    def get_active_rules(self) -> list[Rule]:
        return [rule for rule in self.load_rules() if rule.status == "active"]

    def get_rule(self, name: str) -> Rule | None:
        for rule in self.load_rules():
            if rule.name == name:
                return rule
        return None

    def update_rule_status(self, name: str, status: RuleStatus) -> None:
        """Rewrite the status bullet of ``name`` and invalidate the cache."""
        if status not in _STATUS_ICONS:
            raise ValueError(f"Unknown rule status '{status}'")
        try:
            lines = self._path.read_text(encoding="utf-8").split("\n")
        except OSError as exc:
            raise RuleStoreError(f"Failed to read rules file {self._path}") from exc

        status_line = f"- **Status**: {_STATUS_ICONS[status]} {status.capitalize()}"
        updated: list[str] = []
        header_index = 0
        in_rule = False
        found = False
        replaced = False
        for line in lines:
            header = _RULE_HEADER.match(line.strip())
            if header:
                if in_rule and not replaced:
                    # Rule had no status bullet; add one right under the header.
                    updated.insert(header_index + 1, status_line)
                    replaced = True
                in_rule = header.group("name") == name
                if in_rule:
                    found = True
                    header_index = len(updated)
                updated.append(line)
                continue
            if in_rule and not replaced and line.strip().startswith("- **Status**:"):
                updated.append(status_line)
                replaced = True
                continue
            updated.append(line)

        if not found:
            raise RuleStoreError(f"Rule '{name}' not found in {self._path}")
        if not replaced:
            updated.insert(header_index + 1, status_line)

        try:
            self._path.write_text("\n".join(updated), encoding="utf-8")
        except OSError as exc:
            raise RuleStoreError(f"Failed to write rules file {self._path}") from exc

        self._cached = []
        self._cached_mtime = None
        LOGGER.info("Updated rule '%s' status to '%s'", name, status)


def parse_rules(content: str) -> list[Rule]:
    """Parse the Markdown document, skipping rules that fail validation."""
    rules: list[Rule] = []
    for raw in _split_sections(content):
        try:
            rules.append(Rule.model_validate(raw))
        except ValidationError as exc:
            LOGGER.warning("Rule '%s' validation failed: %s", raw.get("name"), exc)
    return rules


def _split_sections(content: str) -> list[dict[str, Any]]:
    sections: list[dict[str, Any]] = []
    current: dict[str, Any] | None = None
    prompt_lines: list[str] | None = None
    fenced = False

    def finish() -> None:
        if current is None:
            return
        if prompt_lines:
            current["prompt"] = "\n".join(prompt_lines).strip()
        if current.get("prompt"):
            sections.append(current)
        else:
            LOGGER.warning("Rule '%s' has no prompt, ignoring", current["name"])

    for raw_line in content.splitlines():
        line = raw_line.strip()
        header = _RULE_HEADER.match(line)
        if header:
            finish()
            current = {"name": header.group("name"), "criteria": {}, "reminder_template": {}}
            prompt_lines = None
            fenced = False
            continue
        if current is None:
            continue

        if prompt_lines is not None:
            if line.startswith("```"):
                if fenced or prompt_lines:
                    current["prompt"] = "\n".join(prompt_lines).strip()
                    prompt_lines = None
                    fenced = False
                else:
                    fenced = True
                continue
            if not fenced and (line.startswith("---") or line.startswith("### ")):
                current["prompt"] = "\n".join(prompt_lines).strip()
                prompt_lines = None
                continue
            prompt_lines.append(line)
            continue

        if line.lower() in _PROMPT_MARKERS:
            prompt_lines = []
            continue

        bullet = _BULLET.match(line)
        if bullet:
            _apply_bullet(current, bullet.group("key"), bullet.group("value"))

    finish()
    return sections


def _apply_bullet(rule: dict[str, Any], raw_key: str, value: str) -> None:
    key = raw_key.strip().lower()
    if key == "status":
        status = _parse_status(value)
        if status is not None:
            rule["status"] = status
    elif key == "providers":
        rule["providers"] = _parse_providers(value)
    elif key == "subject regex":
        rule["criteria"]["subject_regex"] = value.strip() or None
    elif key in _CRITERIA_KEYS:
        rule["criteria"][_CRITERIA_KEYS[key]] = _parse_list(value)
    elif key in _TEMPLATE_KEYS:
        rule["reminder_template"][_TEMPLATE_KEYS[key]] = value.strip()
    else:
        LOGGER.debug("Ignoring unknown rule attribute '%s'", raw_key)


def _parse_status(value: str) -> RuleStatus | None:
    lowered = value.lower()
    if "✅" in value or "active" in lowered:
        return "active"
    if "⏸" in value or "paused" in lowered:
        return "paused"
    if "❌" in value or "disabled" in lowered:
        return "disabled"
    return None


def _parse_providers(value: str) -> list[str]:
    lowered = value.lower()
    providers = [name for name in ("gmail", "icloud") if name in lowered]
    return providers or ["gmail", "icloud"]


def _parse_list(value: str) -> list[str]:
    """Accept ``["a", "b"]``, ``[a, b]`` or a bare comma separated list."""
    match = re.search(r"\[(.*?)\]", value)
    inner = match.group(1) if match else value
    items = (item.strip().strip("\"'") for item in inner.split(","))
    return [item for item in items if item]


__all__ = ["MarkdownRuleStore", "parse_rules"]
