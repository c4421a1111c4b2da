"""Rule loading and matching."""

from .matcher import KeywordRuleMatcher
from .store import MarkdownRuleStore, parse_rules

__all__ = ["KeywordRuleMatcher", "MarkdownRuleStore", "parse_rules"]
