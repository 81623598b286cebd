"""Summary and report formatting for analysis runs, learning insights and performance."""

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Deque, Dict, Iterator, List, Optional

from ..models import Finding, LearningInsights, Severity
from .logging import get_logger


@dataclass
class SubmissionSummary:
    """Submission-level summary produced once per analysis."""

    files_analyzed: int = 0
    issues_found: int = 0       # Relevant findings before the comment budget
    comments_posted: int = 0
    surfaced: int = 0           # Findings kept after the comment budget
    severity_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return self.severity_counts.get(Severity.ERROR.value, 0)

    @property
    def warning_count(self) -> int:
        return self.severity_counts.get(Severity.WARNING.value, 0)

    @property
    def info_count(self) -> int:
        return self.severity_counts.get(Severity.INFO.value, 0)


def build_summary(
    findings: List[Finding],
    files_analyzed: int,
    issues_found: int,
    comments_posted: int,
) -> SubmissionSummary:
    """
    Build a summary from the surfaced findings.

    Args:
        findings: Findings surfaced for the submission
        files_analyzed: Number of files evaluated
        issues_found: Relevant findings before the budget was applied
        comments_posted: Findings successfully posted

    Returns:
        SubmissionSummary with counts by severity
    """
    severity_counts: Dict[str, int] = {}
    for finding in findings:
        sev = finding.severity.lower()
        severity_counts[sev] = severity_counts.get(sev, 0) + 1

    return SubmissionSummary(
        files_analyzed=files_analyzed,
        issues_found=issues_found,
        comments_posted=comments_posted,
        surfaced=len(findings),
        severity_counts=severity_counts,
    )


def format_summary(summary: SubmissionSummary, findings: List[Finding]) -> str:
    """Format a summary as a markdown comment body."""
    body_parts = ["## Code Review Summary\n"]

    if not findings:
        body_parts.append("No significant issues found. The code looks good.\n")
    else:
        by_severity: Dict[str, List[Finding]] = {}
        for finding in findings:
            by_severity.setdefault(finding.severity.lower(), []).append(finding)

        body_parts.append(f"Found **{summary.issues_found}** issues, showing {summary.surfaced}:\n")

        known = [s.value for s in Severity]
        ordered = known + sorted(s for s in by_severity if s not in known)
        for sev in ordered:
            if sev not in by_severity:
                continue
            body_parts.append(f"\n### {sev.upper()} ({len(by_severity[sev])})\n")
            for finding in by_severity[sev]:
                body_parts.append(
                    f"- **{finding.file_path}:{finding.line_number}** - "
                    f"{finding.message[:100]}"
                )

    body_parts.append("\n---\n")
    body_parts.append("### Stats\n")
    body_parts.append(f"- Files analyzed: {summary.files_analyzed}")
    body_parts.append(f"- Issues found: {summary.issues_found}")
    body_parts.append(f"- Comments posted: {summary.comments_posted}")

    return '\n'.join(body_parts)


def format_insights_report(insights: LearningInsights) -> str:
    """
    Format learning insights as a human-readable report.

    Args:
        insights: LearningInsights snapshot

    Returns:
        Formatted report string
    """
    lines = [
        "## Learning Insights",
        "",
        "### Summary",
        f"- Submissions analyzed: {insights.total_analyzed}",
        f"- Issues found: {insights.total_issues_found}",
        f"- Average issues per run: {insights.avg_issues_per_run:.1f}",
        f"- Average rule effectiveness: {insights.avg_effectiveness:.1%}",
        f"- Developer satisfaction: {insights.satisfaction_score:.1%}",
    ]

    if insights.most_effective_rules:
        lines.append("")
        lines.append("### Most Effective Rules")
        for rule_id in insights.most_effective_rules:
            lines.append(f"- {rule_id} ({insights.rule_scores.get(rule_id, 0.0):.0%})")

    if insights.least_effective_rules:
        lines.append("")
        lines.append("### Least Effective Rules")
        for rule_id in insights.least_effective_rules:
            lines.append(f"- {rule_id} ({insights.rule_scores.get(rule_id, 0.0):.0%})")

    if insights.recommendations:
        lines.append("")
        lines.append("### Recommendations")
        for recommendation in insights.recommendations:
            lines.append(f"- {recommendation}")

    return "\n".join(lines)


@dataclass
class OperationStats:
    """Timing and error counts for one kind of operation."""

    operation: str
    executions: int = 0         # Timed executions, failed ones included
    total_seconds: float = 0.0
    items_processed: int = 0
    errors: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    last_execution_at: Optional[datetime] = None

    @property
    def average_seconds(self) -> float:
        return self.total_seconds / self.executions if self.executions else 0.0

    @property
    def items_per_second(self) -> float:
        return self.items_processed / self.total_seconds if self.total_seconds > 0 else 0.0

    @property
    def error_rate(self) -> float:
        return self.errors / self.executions if self.executions else 0.0


@dataclass(frozen=True)
class PerformanceEvent:
    operation: str
    seconds: float
    items: int
    timestamp: datetime


@dataclass(frozen=True)
class PerformanceAlert:
    operation: str
    kind: str       # "high_error_rate" or "slow_performance"
    message: str


@dataclass
class PerformanceReport:
    """Snapshot of every tracked operation."""

    generated_at: datetime
    operations: List[OperationStats] = field(default_factory=list)
    recent_events: List[PerformanceEvent] = field(default_factory=list)
    alerts: List[PerformanceAlert] = field(default_factory=list)

    @property
    def total_executions(self) -> int:
        return sum(op.executions for op in self.operations)

    @property
    def total_errors(self) -> int:
        return sum(op.errors for op in self.operations)

    @property
    def error_rate(self) -> float:
        total = self.total_executions
        return self.total_errors / total if total else 0.0

    def get(self, operation: str) -> Optional[OperationStats]:
        for stats in self.operations:
            if stats.operation == operation:
                return stats
        return None


class PerformanceMonitor:
    """
    Records how long operations take and how often they fail.

    Only used from the event loop, so no locking is needed.

    Usage:
        with monitor.track("file_evaluation"):
            await engine.evaluate_results_async(file, rules)
    """

    # Alert thresholds
    ERROR_RATE_THRESHOLD = 0.1
    ERROR_RATE_MIN_EXECUTIONS = 10
    SLOW_AVERAGE_SECONDS = 30.0
    RECENT_EVENTS = 100

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self._stats: Dict[str, OperationStats] = {}
        self._events: Deque[PerformanceEvent] = deque(maxlen=self.RECENT_EVENTS)
        self.logger = get_logger("performance")

    def _stats_for(self, operation: str) -> OperationStats:
        if operation not in self._stats:
            self._stats[operation] = OperationStats(operation=operation)
        return self._stats[operation]

    def record_time(self, operation: str, seconds: float, items: int = 1):
        """Count one execution of ``operation`` that took ``seconds``."""
        stats = self._stats_for(operation)
        now = datetime.now()
        stats.executions += 1
        stats.total_seconds += max(0.0, seconds)
        stats.items_processed += items
        stats.last_execution_at = now
        self._events.append(PerformanceEvent(operation, seconds, items, now))
        self.logger.debug(f"{operation}: {seconds * 1000:.1f}ms for {items} items")

    def record_error(self, operation: str, error: BaseException):
        stats = self._stats_for(operation)
        stats.errors += 1
        stats.last_error = str(error) or type(error).__name__
        stats.last_error_at = datetime.now()
        self.logger.debug(f"{operation} failed: {stats.last_error}")

    @contextmanager
    def track(self, operation: str, items: int = 1) -> Iterator[None]:
        """
        Time the enclosed block.

        A block that raises is timed and counted as an error; a cancelled
        block is not recorded.
        """
        start = self._clock()
        try:
            yield
        except Exception as e:
            self.record_error(operation, e)
            self.record_time(operation, self._clock() - start, items=0)
            raise
        self.record_time(operation, self._clock() - start, items)

    def start_timer(self) -> float:
        return self._clock()

    def elapsed(self, started: float) -> float:
        return self._clock() - started

    def alerts(self) -> List[PerformanceAlert]:
        """Operations failing too often or running too slowly."""
        alerts = []
        for stats in self._stats.values():
            if (stats.executions > self.ERROR_RATE_MIN_EXECUTIONS
                    and stats.error_rate > self.ERROR_RATE_THRESHOLD):
                alerts.append(PerformanceAlert(
                    operation=stats.operation,
                    kind="high_error_rate",
                    message=f"High error rate: {stats.errors}/{stats.executions} executions failed",
                ))
            if stats.average_seconds > self.SLOW_AVERAGE_SECONDS:
                alerts.append(PerformanceAlert(
                    operation=stats.operation,
                    kind="slow_performance",
                    message=f"Slow performance: average duration {stats.average_seconds:.1f}s",
                ))
        return alerts

    def report(self) -> PerformanceReport:
        return PerformanceReport(
            generated_at=datetime.now(),
            operations=[replace(stats) for _, stats in sorted(self._stats.items())],
            recent_events=list(self._events),
            alerts=self.alerts(),
        )

    def reset(self):
        self._stats.clear()
        self._events.clear()
        self.logger.info("Performance metrics reset")


def format_performance_report(report: PerformanceReport) -> str:
    """
    Format a performance report for the console.

    Args:
        report: PerformanceReport snapshot

    Returns:
        Formatted report string
    """
    lines = ["## Performance", ""]

    if not report.operations:
        lines.append("No operations recorded.")
        return "\n".join(lines)

    lines.append("### Operations")
    for stats in report.operations:
        lines.append(
            f"- {stats.operation}: {stats.executions} runs, "
            f"avg {stats.average_seconds * 1000:.1f}ms, "
            f"{stats.items_per_second:.1f} items/s, "
            f"{stats.errors} errors"
        )

    lines.append("")
    lines.append(f"- Total executions: {report.total_executions}")
    lines.append(f"- Error rate: {report.error_rate:.1%}")

    if report.alerts:
        lines.append("")
        lines.append("### Alerts")
        for alert in report.alerts:
            lines.append(f"- {alert.operation}: {alert.message}")

    return "\n".join(lines)
