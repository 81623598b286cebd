"""Data models for analyzed files and findings."""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional


@dataclass(frozen=True)
class FileUnit:
    """One changed file handed to the rule engine."""
    path: str
    content: str
    changed_lines: FrozenSet[int] = field(default_factory=frozenset)  # 1-based

    @property
    def lines(self) -> List[str]:
        return self.content.split("\n")

    @classmethod
    def from_dict(cls, data: dict) -> "FileUnit":
        return cls(
            path=data["path"],
            content=data.get("content", ""),
            changed_lines=frozenset(int(n) for n in data.get("changed_lines", [])),
        )


@dataclass(frozen=True)
class Finding:
    """One concrete rule violation at a specific file/line."""
    rule_id: str
    file_path: str
    line_number: int     # 1-based
    severity: str        # Severity value
    message: str
    suggestion: Optional[str] = None
    confidence: Optional[float] = None  # Attached by the learning filter
    audit: bool = False                 # Flagged by an invariant check

    def ref(self, subject_id: str) -> "FindingRef":
        return FindingRef(
            subject_id=subject_id,
            rule_id=self.rule_id,
            file_path=self.file_path,
            line_number=self.line_number,
        )


@dataclass(frozen=True)
class FindingRef:
    """Handle used by callers to report feedback on a surfaced finding."""
    subject_id: str
    rule_id: str
    file_path: str = ""
    line_number: int = 0


class FeedbackOutcome(Enum):
    """Developer reaction to a surfaced finding."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IGNORED = "ignored"

    @classmethod
    def parse(cls, value: str) -> "FeedbackOutcome":
        """Parse an outcome name, accepting true/false-positive aliases."""
        normalized = value.strip().lower().replace("-", "_")
        aliases = {
            "true_positive": cls.ACCEPTED,
            "false_positive": cls.REJECTED,
        }
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)
