"""Error taxonomy for the review bot."""

from enum import Enum


class ErrorKind(Enum):
    """Categories of failure, used in results and outcomes."""
    TRANSIENT_EXTERNAL = "transient_external"    # ChangeSource / Store I/O
    CONFIGURATION = "configuration"              # Missing or invalid rule
    INPUT_VALIDATION = "input_validation"        # Malformed caller input
    INTERNAL_INVARIANT = "internal_invariant"    # Should never happen
    INTERNAL = "internal"                        # Unexpected exception


class ReviewBotError(Exception):
    """Base class for review bot errors."""
    kind = ErrorKind.INTERNAL


class TransientExternalFailure(ReviewBotError):
    """A call to an external collaborator failed."""
    kind = ErrorKind.TRANSIENT_EXTERNAL


class ConfigurationError(ReviewBotError):
    """A rule or setting is missing or invalid."""
    kind = ErrorKind.CONFIGURATION


class InputValidationError(ReviewBotError):
    """Caller supplied malformed input."""
    kind = ErrorKind.INPUT_VALIDATION


class InternalInvariantViolation(ReviewBotError):
    """An internal consistency check failed."""
    kind = ErrorKind.INTERNAL_INVARIANT


class InvalidTransitionError(ReviewBotError):
    """A batch job was asked to move to a state it cannot reach."""
    kind = ErrorKind.INPUT_VALIDATION
