"""Configuration for the review bot."""

from dataclasses import dataclass, field
from typing import List, Optional
import os


def _cpu_count() -> int:
    return os.cpu_count() or 1


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


@dataclass
class ReviewConfig:
    """Configuration for analyzing a single submission."""

    # GitHub settings
    repo: str = ""
    github_token: Optional[str] = None

    # Persistence
    data_dir: str = ".review-bot"

    # Review behavior
    comment_budget: int = 50          # Max findings surfaced per submission
    max_concurrent_files: int = 10    # Files analyzed in parallel
    analyze_only_changed: bool = True
    post_comments: bool = True        # Post inline comments
    post_summary: bool = True         # Post summary comment
    rule_cache_minutes: int = 60      # RuleSet refresh window

    # File selection (GitHub change source)
    include_extensions: List[str] = field(default_factory=list)  # Empty = all
    max_file_size_kb: int = 1024

    @classmethod
    def from_env(cls) -> "ReviewConfig":
        """Create config from environment variables."""
        extensions = os.environ.get("INCLUDE_EXTENSIONS", "")
        return cls(
            repo=os.environ.get("GITHUB_REPOSITORY", ""),
            github_token=os.environ.get("GITHUB_TOKEN"),
            data_dir=os.environ.get("REVIEW_BOT_DATA_DIR", ".review-bot"),
            comment_budget=int(os.environ.get("COMMENT_BUDGET", "50")),
            max_concurrent_files=int(os.environ.get("MAX_CONCURRENT_FILES", "10")),
            analyze_only_changed=_env_bool("ANALYZE_ONLY_CHANGED", "true"),
            post_comments=_env_bool("POST_COMMENTS", "true"),
            post_summary=_env_bool("POST_SUMMARY", "true"),
            rule_cache_minutes=int(os.environ.get("RULE_CACHE_MINUTES", "60")),
            include_extensions=[e.strip() for e in extensions.split(",") if e.strip()],
            max_file_size_kb=int(os.environ.get("MAX_FILE_SIZE_KB", "1024")),
        )


@dataclass
class LearningConfig:
    """Thresholds and pacing for the learning filter."""

    # Relevance gate
    min_effectiveness: float = 0.3
    min_confidence: float = 0.4
    min_relevance: float = 0.2

    # Comment pacing (seconds)
    base_delay: float = 0.5
    min_delay: float = 0.2
    max_delay: float = 1.0

    # Adaptive rule variants
    disable_below_score: float = 0.2
    disable_min_found: int = 10
    demote_below_score: float = 0.4
    demote_min_found: int = 5

    @classmethod
    def from_env(cls) -> "LearningConfig":
        """Create config from environment variables."""
        return cls(
            min_effectiveness=float(os.environ.get("MIN_EFFECTIVENESS", "0.3")),
            min_confidence=float(os.environ.get("MIN_CONFIDENCE", "0.4")),
            min_relevance=float(os.environ.get("MIN_RELEVANCE", "0.2")),
            base_delay=float(os.environ.get("COMMENT_BASE_DELAY", "0.5")),
            min_delay=float(os.environ.get("COMMENT_MIN_DELAY", "0.2")),
            max_delay=float(os.environ.get("COMMENT_MAX_DELAY", "1.0")),
            disable_below_score=float(os.environ.get("DISABLE_BELOW_SCORE", "0.2")),
            disable_min_found=int(os.environ.get("DISABLE_MIN_FOUND", "10")),
            demote_below_score=float(os.environ.get("DEMOTE_BELOW_SCORE", "0.4")),
            demote_min_found=int(os.environ.get("DEMOTE_MIN_FOUND", "5")),
        )


@dataclass
class BatchConfig:
    """Configuration for batch replay jobs."""

    max_concurrency: int = field(default_factory=_cpu_count)
    result_batch_size: int = 100      # Results flushed downstream per sub-batch
    checkpoint_interval: int = 10     # Items between progress checkpoints
    requests_per_second: float = 10.0  # External call rate limit (<= 0 disables)
    queue_size: int = 100

    @classmethod
    def from_env(cls) -> "BatchConfig":
        """Create config from environment variables."""
        return cls(
            max_concurrency=int(os.environ.get("BATCH_MAX_CONCURRENCY", str(_cpu_count()))),
            result_batch_size=int(os.environ.get("BATCH_RESULT_SIZE", "100")),
            checkpoint_interval=int(os.environ.get("BATCH_CHECKPOINT_INTERVAL", "10")),
            requests_per_second=float(os.environ.get("BATCH_REQUESTS_PER_SECOND", "10")),
            queue_size=int(os.environ.get("BATCH_QUEUE_SIZE", "100")),
        )


# Default configurations
DEFAULT_CONFIG = ReviewConfig()
DEFAULT_LEARNING_CONFIG = LearningConfig()
