"""Rule evaluation.

This module provides:
- RuleEngine: concurrent (file x rule) scanning
- RuleSetCache: versioned RuleSet snapshots refreshed per cache window
- DEFAULT_RULES: built-in coding standards
"""

from .rule_engine import RuleEngine, is_test_file, is_suppressed
from .rule_cache import RuleSetCache
from .default_rules import DEFAULT_RULES, default_rule_set
from .heuristics import HEURISTICS

__all__ = [
    "RuleEngine",
    "is_test_file",
    "is_suppressed",
    "RuleSetCache",
    "DEFAULT_RULES",
    "default_rule_set",
    "HEURISTICS",
]
