"""Tests for the Markdown rule store."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from inbox_reminders.core.interfaces import RuleStoreError
from inbox_reminders.rules import MarkdownRuleStore, parse_rules

RULES_DOCUMENT = """# Email Rules

Reglas para procesar correos automáticamente.

### Rule: gastos_comunes
- **Status**: ✅ Active
- **Providers**: Gmail
- **From Contains**: ["administracion", "ggcc"]
- **From Domains**: [edificio.cl]
- **Subject Contains**: ["gastos comunes", "GGCC"]
- **Subject Regex**: enero|febrero
- **Title Template**: Gastos Comunes ${periodo} - $${monto}
- **List**: Casa
- **Priority**: high
- **Days Before**: 5
- **Time**: 08:30

**Prompt:**
```
Extrae el monto total y la fecha de vencimiento.
Devuelve JSON.
```

---

### Rule: entregas_amazon
- **Status**: ⏸️ Paused
- **Body Contains**: tracking, envío

**Prompt:**
Extrae el número de seguimiento
y la fecha de entrega.

---

### Rule: sin_prompt
- **Status**: ✅ Active
- **Subject Contains**: ["factura"]

### Rule: prioridad_invalida
- **Priority**: urgent

**Prompt:**
Extrae algo.
"""


def _write(path: Path, content: str = RULES_DOCUMENT) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_parse_rules_reads_criteria_template_and_fenced_prompt() -> None:
    rules = {rule.name: rule for rule in parse_rules(RULES_DOCUMENT)}

    assert set(rules) == {"gastos_comunes", "entregas_amazon"}
    gastos = rules["gastos_comunes"]
    assert gastos.status == "active"
    assert gastos.providers == ("gmail",)
    assert gastos.criteria.from_contains == ("administracion", "ggcc")
    assert gastos.criteria.from_domains == ("edificio.cl",)
    assert gastos.criteria.subject_contains == ("gastos comunes", "GGCC")
    assert gastos.criteria.subject_regex == "enero|febrero"
    assert gastos.prompt == (
        "Extrae el monto total y la fecha de vencimiento.\nDevuelve JSON."
    )
    template = gastos.reminder_template
    assert template.title_template == "Gastos Comunes ${periodo} - $${monto}"
    assert template.list_name == "Casa"
    assert template.priority == "high"
    assert template.days_before_reminder == 5
    assert template.time_of_day == "08:30"


def test_parse_rules_reads_unfenced_prompt_and_defaults() -> None:
    amazon = next(r for r in parse_rules(RULES_DOCUMENT) if r.name == "entregas_amazon")

    assert amazon.status == "paused"
    assert amazon.providers == ("gmail", "icloud")
    assert amazon.criteria.body_contains == ("tracking", "envío")
    assert amazon.prompt == "Extrae el número de seguimiento\ny la fecha de entrega."
    assert amazon.reminder_template.list_name == "Facturas"
    assert amazon.reminder_template.days_before_reminder == 3


def test_status_words_are_accepted_without_icons() -> None:
    document = "### Rule: r1\n- **Status**: disabled\n\n**Prompt:**\nExtrae.\n"

    (rule,) = parse_rules(document)

    assert rule.status == "disabled"


def test_load_rules_missing_file_returns_empty(tmp_path: Path) -> None:
    store = MarkdownRuleStore(tmp_path / "missing.md")

    assert store.load_rules() == []
    assert store.get_active_rules() == []


def test_get_active_rules_filters_by_status(tmp_path: Path) -> None:
    store = MarkdownRuleStore(_write(tmp_path / "rules.md"))

    assert [rule.name for rule in store.get_active_rules()] == ["gastos_comunes"]
    assert store.get_rule("entregas_amazon") is not None
    assert store.get_rule("unknown") is None


def test_load_rules_is_cached_until_mtime_changes(tmp_path: Path) -> None:
    path = _write(tmp_path / "rules.md")
    store = MarkdownRuleStore(path)
    assert len(store.load_rules()) == 2
    original = path.stat()

    _write(path, "### Rule: solo\n**Prompt:**\nExtrae.\n")
    os.utime(path, ns=(original.st_atime_ns, original.st_mtime_ns))
    assert len(store.load_rules()) == 2

    os.utime(path, ns=(original.st_atime_ns, original.st_mtime_ns + 1_000_000_000))
    assert [rule.name for rule in store.load_rules()] == ["solo"]


def test_update_rule_status_rewrites_bullet(tmp_path: Path) -> None:
    path = _write(tmp_path / "rules.md")
    store = MarkdownRuleStore(path)
    assert store.get_rule("gastos_comunes").status == "active"  # type: ignore[union-attr]

    store.update_rule_status("gastos_comunes", "paused")

    content = path.read_text(encoding="utf-8")
    assert "- **Status**: ⏸️ Paused" in content
    assert content.count("- **Status**:") == 3
    assert store.get_rule("gastos_comunes").status == "paused"  # type: ignore[union-attr]
    assert store.get_rule("entregas_amazon").status == "paused"  # type: ignore[union-attr]


def test_update_rule_status_inserts_missing_bullet(tmp_path: Path) -> None:
    path = _write(tmp_path / "rules.md", "### Rule: r1\n\n**Prompt:**\nExtrae.\n")
    store = MarkdownRuleStore(path)

    store.update_rule_status("r1", "disabled")

    lines = path.read_text(encoding="utf-8").split("\n")
    assert lines[:2] == ["### Rule: r1", "- **Status**: ❌ Disabled"]
    assert store.get_rule("r1").status == "disabled"  # type: ignore[union-attr]


def test_update_rule_status_unknown_rule_raises(tmp_path: Path) -> None:
    store = MarkdownRuleStore(_write(tmp_path / "rules.md"))

    with pytest.raises(RuleStoreError, match="not found"):
        store.update_rule_status("nope", "active")
