"""Data models for rule effectiveness learning."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional

from ..errors import InternalInvariantViolation
from .finding import FeedbackOutcome

NEUTRAL_SCORE = 0.5


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class EffectivenessRecord:
    """Accumulated feedback counters for one rule."""
    rule_id: str
    issues_found: int = 0
    issues_accepted: int = 0
    issues_rejected: int = 0
    issues_ignored: int = 0
    score: float = NEUTRAL_SCORE
    last_updated: datetime = field(default_factory=datetime.now)

    @property
    def feedback_total(self) -> int:
        return self.issues_accepted + self.issues_rejected + self.issues_ignored

    @property
    def denominator(self) -> int:
        # Feedback may arrive for findings never counted as found
        return max(self.issues_found, self.feedback_total)

    @property
    def has_history(self) -> bool:
        return self.denominator > 0

    def rates(self) -> Dict[str, float]:
        total = self.denominator
        if total == 0:
            return {"accepted": 0.0, "rejected": 0.0, "ignored": 0.0}
        return {
            "accepted": self.issues_accepted / total,
            "rejected": self.issues_rejected / total,
            "ignored": self.issues_ignored / total,
        }

    def compute_score(self) -> float:
        """Ignore-aware effectiveness score, recomputed from the counters."""
        if not self.has_history:
            return NEUTRAL_SCORE
        rates = self.rates()
        score = rates["accepted"] - 0.5 * rates["rejected"] - 0.2 * rates["ignored"]
        return _clamp(score, 0.0, 1.0)

    def compute_confidence(self) -> float:
        """Confidence derived from accept/reject rates, in [0.1, 0.95]."""
        if not self.has_history:
            return NEUTRAL_SCORE
        rates = self.rates()
        return _clamp(rates["accepted"] - 0.5 * rates["rejected"], 0.1, 0.95)

    def with_outcome(self, outcome: FeedbackOutcome) -> "EffectivenessRecord":
        """Return a copy with the matching counter incremented by one."""
        counters = {
            FeedbackOutcome.ACCEPTED: "issues_accepted",
            FeedbackOutcome.REJECTED: "issues_rejected",
            FeedbackOutcome.IGNORED: "issues_ignored",
        }
        name = counters[outcome]
        updated = replace(self, **{name: getattr(self, name) + 1})
        return updated._rescored()

    def with_found(self, count: int) -> "EffectivenessRecord":
        return replace(self, issues_found=self.issues_found + count)._rescored()

    def _rescored(self) -> "EffectivenessRecord":
        return replace(self, score=self.compute_score(), last_updated=datetime.now())

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "issues_found": self.issues_found,
            "issues_accepted": self.issues_accepted,
            "issues_rejected": self.issues_rejected,
            "issues_ignored": self.issues_ignored,
            "score": self.score,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EffectivenessRecord":
        record = cls(
            rule_id=data["rule_id"],
            issues_found=max(0, int(data.get("issues_found", 0))),
            issues_accepted=max(0, int(data.get("issues_accepted", 0))),
            issues_rejected=max(0, int(data.get("issues_rejected", 0))),
            issues_ignored=max(0, int(data.get("issues_ignored", 0))),
            last_updated=_parse_time(data.get("last_updated")) or datetime.now(),
        )
        # Stored score is informational; the counters are authoritative
        return replace(record, score=record.compute_score())


@dataclass(frozen=True)
class RunMetrics:
    """Per-submission analysis metrics."""
    files_analyzed: int = 0
    issues_found: int = 0
    comments_posted: int = 0
    rule_usage_counts: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisRun:
    """One submission's analysis, finalized exactly once."""
    id: str
    subject_id: str
    started_at: datetime
    metrics: RunMetrics = field(default_factory=RunMetrics)
    completed_at: Optional[datetime] = None
    success: bool = False
    error_message: Optional[str] = None

    @classmethod
    def start(cls, subject_id: str) -> "AnalysisRun":
        return cls(id=str(uuid.uuid4()), subject_id=subject_id, started_at=datetime.now())

    @property
    def is_finalized(self) -> bool:
        return self.completed_at is not None

    def finalize(
        self,
        metrics: Optional[RunMetrics] = None,
        success: bool = True,
        error_message: Optional[str] = None,
    ) -> "AnalysisRun":
        if self.is_finalized:
            raise InternalInvariantViolation(f"Analysis run {self.id} already finalized")
        return replace(
            self,
            metrics=metrics or self.metrics,
            completed_at=datetime.now(),
            success=success,
            error_message=error_message,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "success": self.success,
            "error_message": self.error_message,
            "metrics": {
                "files_analyzed": self.metrics.files_analyzed,
                "issues_found": self.metrics.issues_found,
                "comments_posted": self.metrics.comments_posted,
                "rule_usage_counts": dict(self.metrics.rule_usage_counts),
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisRun":
        metrics = data.get("metrics", {})
        return cls(
            id=data["id"],
            subject_id=data["subject_id"],
            started_at=_parse_time(data.get("started_at")) or datetime.now(),
            completed_at=_parse_time(data.get("completed_at")),
            success=bool(data.get("success", False)),
            error_message=data.get("error_message"),
            metrics=RunMetrics(
                files_analyzed=metrics.get("files_analyzed", 0),
                issues_found=metrics.get("issues_found", 0),
                comments_posted=metrics.get("comments_posted", 0),
                rule_usage_counts=dict(metrics.get("rule_usage_counts", {})),
            ),
        )


@dataclass
class LearningInsights:
    """Aggregate snapshot over effectiveness records and analysis runs."""
    total_analyzed: int = 0
    total_issues_found: int = 0
    avg_issues_per_run: float = 0.0
    avg_effectiveness: float = 0.0
    most_effective_rules: List[str] = field(default_factory=list)
    least_effective_rules: List[str] = field(default_factory=list)
    rule_scores: Dict[str, float] = field(default_factory=dict)
    satisfaction_score: float = NEUTRAL_SCORE
    recommendations: List[str] = field(default_factory=list)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)
