"""Utility functions."""

from .logging import setup_logging, get_logger
from .metrics import (
    SubmissionSummary,
    build_summary,
    format_summary,
    format_insights_report,
    OperationStats,
    PerformanceAlert,
    PerformanceMonitor,
    PerformanceReport,
    format_performance_report,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "SubmissionSummary",
    "build_summary",
    "format_summary",
    "format_insights_report",
    "OperationStats",
    "PerformanceAlert",
    "PerformanceMonitor",
    "PerformanceReport",
    "format_performance_report",
]
