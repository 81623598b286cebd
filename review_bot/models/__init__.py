"""Data models for the review bot."""

from .rule import Severity, Rule, RuleSet, severity_weight, TESTS_EXCLUDED
from .finding import FileUnit, Finding, FindingRef, FeedbackOutcome
from .learning import (
    EffectivenessRecord,
    RunMetrics,
    AnalysisRun,
    LearningInsights,
)
from .batch import BatchStatus, BatchItem, ItemResult, BatchJob
from .result import Result, AnalysisOutcome

__all__ = [
    "Severity",
    "Rule",
    "RuleSet",
    "severity_weight",
    "TESTS_EXCLUDED",
    "FileUnit",
    "Finding",
    "FindingRef",
    "FeedbackOutcome",
    "EffectivenessRecord",
    "RunMetrics",
    "AnalysisRun",
    "LearningInsights",
    "BatchStatus",
    "BatchItem",
    "ItemResult",
    "BatchJob",
    "Result",
    "AnalysisOutcome",
]
