"""Built-in coding standards used when no rules file is configured."""

from typing import List

from ..models import Rule, RuleSet, TESTS_EXCLUDED


def _rule(rule_id, severity, message, pattern=None, suggestion=None, applicability=()):
    return Rule(
        id=rule_id,
        severity=severity,
        message=message,
        pattern=pattern,
        suggestion=suggestion,
        applicability=frozenset(applicability),
    )


DEFAULT_RULES: List[Rule] = [
    _rule(
        "console-output", "warning",
        "Avoid writing to the console directly; use a logger instead",
        pattern=r"Console\.Write(?:Line)?\s*\(|\bprint\s*\(|console\.log\s*\(",
        suggestion="Replace with a structured logging call",
    ),
    _rule(
        "magic-numbers", "warning",
        "Magic number detected; extract it to a named constant",
        pattern=r"\b\d{3,}\b",
        suggestion="Define a constant with a descriptive name",
        applicability=[TESTS_EXCLUDED],
    ),
    _rule(
        "empty-catch", "warning",
        "Empty catch block swallows errors silently",
        pattern=r"catch\s*\([^)]*\)\s*\{\s*\}|catch\s*\{\s*\}|except[^:]*:\s*pass\b",
        suggestion="Log or handle the exception, or rethrow it",
    ),
    _rule(
        "catch-generic-exception", "warning",
        "Catching the base Exception type hides specific failures",
        pattern=r"catch\s*\(\s*Exception\b|except\s+Exception\s*(?:as\s+\w+\s*)?:",
        suggestion="Catch the most specific exception type possible",
    ),
    _rule(
        "throw-generic-exception", "warning",
        "Throwing the base Exception type; use a specific exception",
        pattern=r"throw\s+new\s+Exception\s*\(|raise\s+Exception\s*\(",
        suggestion="Raise a domain-specific exception type",
    ),
    _rule(
        "goto-statement", "error",
        "Avoid goto statements",
        pattern=r"\bgoto\b",
        suggestion="Restructure the control flow with loops or early returns",
    ),
    _rule(
        "async-void", "error",
        "Async void methods cannot be awaited and crash on unhandled exceptions",
        pattern=r"^\s*(?:public\s+|private\s+|protected\s+|internal\s+)?async\s+void\s+",
        suggestion="Return Task instead of void",
    ),
    _rule(
        "fixme-comment", "info",
        "FIXME comment indicates known broken code",
        pattern=r"(?://|#)\s*FIXME\b",
        suggestion="Resolve the issue or track it in the issue tracker",
    ),
    _rule(
        "hardcoded-secret", "error",
        "Possible hardcoded credential",
        pattern=r"\b(?:password|passwd|secret|api_?key|token)\s*[:=]\s*[\"'][^\"']{4,}[\"']",
        suggestion="Load credentials from configuration or a secret store",
    ),
    _rule(
        "deprecated-attribute", "info",
        "Use of the Obsolete attribute; plan removal of deprecated code",
        pattern=r"\[Obsolete\(",
    ),
    _rule(
        "suppress-warnings", "info",
        "Warning suppression hides analyzer findings",
        pattern=r"\[SuppressMessage\(|#pragma\s+warning\s+disable|#\s*noqa\b",
        suggestion="Fix the underlying warning instead of suppressing it",
    ),
    _rule(
        "parameter-count", "warning",
        "Method has too many parameters (more than 5)",
        suggestion="Group related parameters into an object",
        applicability=["methods", TESTS_EXCLUDED],
    ),
    _rule(
        "nesting-depth", "warning",
        "Code is nested too deeply (more than 4 levels)",
        suggestion="Extract nested blocks into helper methods or use early returns",
    ),
    _rule(
        "line-length", "info",
        "Line exceeds 120 characters",
        suggestion="Break the line to improve readability",
    ),
]


def default_rule_set(version: int = 0) -> RuleSet:
    """Return a RuleSet holding the built-in rules."""
    return RuleSet(DEFAULT_RULES, version=version)
