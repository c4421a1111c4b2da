"""Field extraction that prefers an LLM and falls back to regex patterns."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from inbox_reminders.core.models import EmailMessage, ExtractionResult, Rule

from .llm import LLMClient, LLMError
from .patterns import PatternFieldExtractor, score_confidence
from .prompts import build_extraction_prompt

LOGGER = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class LlmFieldExtractor:
    """Ask the LLM for the rule's fields; use patterns when it fails."""

    def __init__(
        self,
        llm_client: LLMClient,
        *,
        fallback: PatternFieldExtractor | None = None,
    ) -> None:
        self._llm_client = llm_client
        self._fallback = fallback or PatternFieldExtractor()

    def extract(self, message: EmailMessage, rule: Rule) -> ExtractionResult:
        prompt = build_extraction_prompt(message, rule)
        try:
            raw_output = self._llm_client.generate(prompt)
            fields = _parse_llm_output(raw_output)
        except (LLMError, ValueError) as exc:
            LOGGER.warning(
                "LLM extraction failed for email %s with rule %s: %s",
                message.id,
                rule.name,
                exc,
            )
            result = self._fallback.extract(message, rule)
            result.method = f"{result.method}-fallback"
            result.error = str(exc)
            return result

        confidence = score_confidence(fields, rule.name)
        LOGGER.info(
            "Extracted %d fields from email %s with rule %s (confidence %s%%)",
            len(fields),
            message.id,
            rule.name,
            confidence,
        )
        return ExtractionResult(
            rule_name=rule.name,
            fields=fields,
            confidence=confidence,
            method=self._llm_client.provider_id,
        )


def _parse_llm_output(raw: str) -> dict[str, Any]:
    match = _JSON_OBJECT.search(raw)
    if not match:
        raise ValueError("LLM output did not contain a JSON object")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ValueError("LLM output was not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError("LLM output must be a JSON object")
    return {str(key): _normalise_value(value) for key, value in payload.items()}


def _normalise_value(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


__all__ = ["LlmFieldExtractor"]
