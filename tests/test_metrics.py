"""Tests for summaries and performance monitoring.

- Given-When-Then structure
- Fake clock, no real timing
"""

import asyncio

import pytest

from review_bot.models import Finding
from review_bot.utils import (
    PerformanceMonitor,
    build_summary,
    format_performance_report,
    format_summary,
)


class SteppingClock:
    """Advances by ``step`` seconds on every reading."""

    def __init__(self, step=0.5):
        self.now = 0.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


class TestSummary:
    """Tests for the submission summary."""

    def test_empty_summary_says_no_issues(self):
        summary = build_summary([], files_analyzed=0, issues_found=0, comments_posted=0)

        text = format_summary(summary, [])

        assert "No significant issues found" in text
        assert "- Files analyzed: 0" in text

    def test_findings_are_grouped_by_severity(self):
        findings = [
            Finding(rule_id="a", file_path="x.py", line_number=3, severity="error", message="bad"),
            Finding(rule_id="b", file_path="y.py", line_number=1, severity="warning", message="meh"),
        ]
        summary = build_summary(findings, files_analyzed=2, issues_found=4, comments_posted=2)

        text = format_summary(summary, findings)

        assert "Found **4** issues, showing 2" in text
        assert text.index("### ERROR (1)") < text.index("### WARNING (1)")
        assert summary.error_count == 1


class TestPerformanceMonitor:
    """Tests for operation timing, errors and alerts."""

    def test_track_records_duration_and_items(self):
        """Given two tracked blocks, should average their durations."""
        # Given
        monitor = PerformanceMonitor(clock=SteppingClock(step=0.5))

        # When
        with monitor.track("file_evaluation", items=2):
            pass
        with monitor.track("file_evaluation", items=2):
            pass

        # Then
        stats = monitor.report().get("file_evaluation")
        assert stats.executions == 2
        assert stats.items_processed == 4
        assert stats.average_seconds == pytest.approx(0.5)
        assert stats.items_per_second == pytest.approx(4.0)

    def test_failing_block_counts_an_error_and_reraises(self):
        monitor = PerformanceMonitor(clock=SteppingClock())

        with pytest.raises(ValueError):
            with monitor.track("batch_item"):
                raise ValueError("bad item")

        stats = monitor.report().get("batch_item")
        assert stats.errors == 1
        assert stats.executions == 1
        assert stats.last_error == "bad item"
        assert stats.error_rate == 1.0

    def test_cancelled_block_is_not_recorded(self):
        """Cancellation is not a failure of the operation."""
        monitor = PerformanceMonitor(clock=SteppingClock())

        async def tracked():
            with monitor.track("file_evaluation"):
                await asyncio.sleep(10)

        async def run():
            task = asyncio.create_task(tracked())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert monitor.report().operations == []

    def test_alerts_on_high_error_rate_and_slow_operations(self):
        """Given 12 runs with 3 failures and a slow operation, should raise two alerts."""
        # Given
        monitor = PerformanceMonitor()
        for n in range(12):
            monitor.record_time("submission", 0.1)
            if n < 3:
                monitor.record_error("submission", RuntimeError("offline"))
        monitor.record_time("batch_item", 45.0)

        # When
        alerts = monitor.alerts()

        # Then
        assert {(a.operation, a.kind) for a in alerts} == {
            ("submission", "high_error_rate"),
            ("batch_item", "slow_performance"),
        }

    def test_few_executions_do_not_alert(self):
        monitor = PerformanceMonitor()
        monitor.record_time("submission", 0.1)
        monitor.record_error("submission", RuntimeError("offline"))

        assert monitor.alerts() == []

    def test_report_is_a_snapshot(self):
        monitor = PerformanceMonitor()
        monitor.record_time("submission", 1.0)

        report = monitor.report()
        monitor.record_time("submission", 1.0)

        assert report.get("submission").executions == 1
        assert report.total_executions == 1

    def test_reset_clears_everything(self):
        monitor = PerformanceMonitor()
        monitor.record_time("submission", 1.0)

        monitor.reset()

        report = monitor.report()
        assert report.operations == []
        assert report.recent_events == []

    def test_format_report(self):
        """Should list operations and alerts."""
        # Given
        monitor = PerformanceMonitor()
        monitor.record_time("batch_item", 40.0, items=1)

        # When
        text = format_performance_report(monitor.report())

        # Then
        assert "## Performance" in text
        assert "- batch_item: 1 runs" in text
        assert "### Alerts" in text
        assert "Slow performance" in text

    def test_format_empty_report(self):
        text = format_performance_report(PerformanceMonitor().report())

        assert "No operations recorded." in text
