"""Structured field extraction from matched emails."""

from .extractor import LlmFieldExtractor
from .llm import LLMClient, LLMError, OllamaClient
from .patterns import PatternFieldExtractor, parse_amount, parse_due_date, score_confidence
from .prompts import build_extraction_prompt

__all__ = [
    "LLMClient",
    "LLMError",
    "LlmFieldExtractor",
    "OllamaClient",
    "PatternFieldExtractor",
    "build_extraction_prompt",
    "parse_amount",
    "parse_due_date",
    "score_confidence",
]
