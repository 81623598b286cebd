"""Data models for coding rules."""

import fnmatch
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from ..errors import ConfigurationError


class Severity(Enum):
    """Rule severity levels."""
    ERROR = "error"       # Bugs, dangerous constructs
    WARNING = "warning"   # Code quality
    INFO = "info"         # Style, suggestions


SEVERITY_WEIGHTS: Dict[str, float] = {
    Severity.ERROR.value: 1.0,
    Severity.WARNING.value: 0.8,
    Severity.INFO.value: 0.6,
}

# Demotion order used by adaptive rule variants
SEVERITY_ORDER = [Severity.ERROR.value, Severity.WARNING.value, Severity.INFO.value]

TESTS_EXCLUDED = "tests-excluded"


def severity_weight(severity: str) -> float:
    """Weight of a severity string; unknown severities weigh 0.5."""
    return SEVERITY_WEIGHTS.get((severity or "").lower(), 0.5)


@dataclass(frozen=True)
class Rule:
    """A named pattern plus metadata describing one coding-standard check."""
    id: str
    severity: str        # Severity value (kept as string, may be unknown)
    message: str
    pattern: Optional[str] = None
    suggestion: Optional[str] = None
    applicability: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def excluded_from_tests(self) -> bool:
        return TESTS_EXCLUDED in self.applicability

    @property
    def path_globs(self) -> List[str]:
        """Applicability entries that are path globs (e.g. ``*.py``)."""
        return [a for a in self.applicability if any(c in a for c in "*?[")]

    def applies_to_path(self, path: str) -> bool:
        """Check the path against glob applicability; no globs means any path."""
        globs = self.path_globs
        if not globs:
            return True
        name = path.rsplit("/", 1)[-1]
        return any(fnmatch.fnmatch(name, g) or fnmatch.fnmatch(path, g) for g in globs)

    def with_severity(self, severity: str) -> "Rule":
        return replace(self, severity=severity)

    @classmethod
    def from_dict(cls, data: dict) -> "Rule":
        """
        Build a rule from its JSON form.

        Raises:
            ConfigurationError: if ``id`` or ``message`` is missing
        """
        rule_id = (data.get("id") or "").strip()
        message = (data.get("message") or "").strip()
        if not rule_id:
            raise ConfigurationError(f"Rule without id: {data!r}")
        if not message:
            raise ConfigurationError(f"Rule '{rule_id}' has no message")

        applicability = data.get("applicability") or data.get("appliesTo") or []
        return cls(
            id=rule_id,
            severity=(data.get("severity") or Severity.WARNING.value).lower(),
            message=message,
            pattern=data.get("pattern") or None,
            suggestion=data.get("suggestion") or None,
            applicability=frozenset(applicability),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "severity": self.severity,
            "message": self.message,
            "pattern": self.pattern,
            "suggestion": self.suggestion,
            "applicability": sorted(self.applicability),
        }


class RuleSet:
    """
    Immutable, versioned collection of rules.

    A refresh builds a new RuleSet and swaps the reference; instances are
    never mutated, so concurrent evaluators can read them without locking.
    """

    def __init__(
        self,
        rules: Iterable[Rule],
        version: int = 0,
        loaded_at: Optional[datetime] = None,
    ):
        unique: Dict[str, Rule] = {}
        self.rejected: List[str] = []
        for rule in rules:
            if rule.id in unique:
                self.rejected.append(f"Duplicate rule id '{rule.id}'")
                continue
            unique[rule.id] = rule

        self._rules: Tuple[Rule, ...] = tuple(unique.values())
        self._by_id: Dict[str, Rule] = unique
        self.version = version
        self.loaded_at = loaded_at or datetime.now()

    @classmethod
    def from_dicts(cls, entries: Iterable[dict], version: int = 0) -> "RuleSet":
        """Parse rules, skipping invalid entries (listed in ``rejected``)."""
        rules = []
        errors = []
        for entry in entries:
            try:
                rules.append(Rule.from_dict(entry))
            except ConfigurationError as e:
                errors.append(str(e))
        rule_set = cls(rules, version=version)
        rule_set.rejected = errors + rule_set.rejected
        return rule_set

    def with_version(self, version: int) -> "RuleSet":
        return RuleSet(self._rules, version=version)

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._by_id.get(rule_id)

    @property
    def ids(self) -> List[str]:
        return [r.id for r in self._rules]

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleSet(version={self.version}, rules={len(self._rules)})"
