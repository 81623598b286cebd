"""Result and outcome types returned across the pipeline."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from ..errors import ErrorKind, ReviewBotError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or an error kind with a human-readable message."""
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Result[T]":
        return cls(error=kind, message=message)

    @classmethod
    def from_exception(cls, exc: Exception) -> "Result[T]":
        kind = exc.kind if isinstance(exc, ReviewBotError) else ErrorKind.INTERNAL
        return cls(error=kind, message=str(exc) or type(exc).__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    """Structured result of analyzing one submission."""
    success: bool
    issues_found: int = 0
    comments_posted: int = 0
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    run_id: Optional[str] = None

    @classmethod
    def failed(
        cls,
        message: str,
        kind: ErrorKind,
        run_id: Optional[str] = None,
    ) -> "AnalysisOutcome":
        return cls(success=False, error_message=message, error_kind=kind, run_id=run_id)
