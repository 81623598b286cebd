"""Data models for batch replay jobs."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .finding import FileUnit
from .learning import AnalysisRun


class BatchStatus(Enum):
    """Lifecycle of a batch job."""
    QUEUED = "queued"          # Waiting for the dispatcher
    RUNNING = "running"        # Items being dispatched
    PAUSED = "paused"          # No new items dispatched until resumed
    COMPLETED = "completed"    # All items processed (some may have failed)
    FAILED = "failed"          # Job-level failure or interruption

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.FAILED)


@dataclass(frozen=True)
class BatchItem:
    """One historical submission to replay."""
    id: str
    subject_id: str
    files: Optional[Tuple[FileUnit, ...]] = None  # None = fetch from change source

    @classmethod
    def from_dict(cls, data: dict) -> "BatchItem":
        files = data.get("files")
        return cls(
            id=str(data.get("id") or data["subject_id"]),
            subject_id=data["subject_id"],
            files=tuple(FileUnit.from_dict(f) for f in files) if files is not None else None,
        )


@dataclass(frozen=True)
class ItemResult:
    """Outcome of processing one batch item."""
    item_id: str
    success: bool
    error_message: Optional[str] = None
    run: Optional[AnalysisRun] = None


@dataclass
class BatchJob:
    """A queued unit of work replaying the analysis pipeline over many items."""
    id: str
    items: Tuple[BatchItem, ...]
    status: BatchStatus = BatchStatus.QUEUED
    total: int = -1          # Defaults to len(items); kept for jobs rebuilt from checkpoints
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    item_errors: Dict[str, str] = field(default_factory=dict)
    completed_item_ids: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.total < 0:
            self.total = len(self.items)

    @property
    def progress(self) -> float:
        return self.processed / self.total if self.total else 1.0

    def checkpoint(self) -> dict:
        """Progress record persisted through the store."""
        return {
            "job_id": self.id,
            "status": self.status.value,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "completed_item_ids": list(self.completed_item_ids),
            "error_message": self.error_message,
            "updated_at": datetime.now().isoformat(),
        }

    @classmethod
    def from_checkpoint(cls, data: dict) -> "BatchJob":
        """Rebuild job progress from a checkpoint; items are not persisted."""
        return cls(
            id=data["job_id"],
            items=(),
            status=BatchStatus(data.get("status", BatchStatus.QUEUED.value)),
            total=int(data.get("total", 0)),
            processed=int(data.get("processed", 0)),
            succeeded=int(data.get("succeeded", 0)),
            failed=int(data.get("failed", 0)),
            error_message=data.get("error_message"),
            completed_item_ids=list(data.get("completed_item_ids", [])),
        )
