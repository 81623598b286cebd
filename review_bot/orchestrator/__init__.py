"""Analysis orchestration.

This module provides:
- AnalysisCoordinator: evaluates, filters, budgets and posts one submission
- BatchEngine: queued batch replays with pause/resume and checkpoints
- RateLimiter: minimum interval between external calls
- ReviewService: the operations exposed to callers
"""

from .coordinator import AnalysisCoordinator, AnalysisReport, select_within_budget
from .batch import BatchEngine
from .rate_limit import RateLimiter
from .service import ReviewService, validate_subject_id

__all__ = [
    "AnalysisCoordinator",
    "AnalysisReport",
    "select_within_budget",
    "BatchEngine",
    "RateLimiter",
    "ReviewService",
    "validate_subject_id",
]
