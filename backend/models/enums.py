"""Reusable enums for oracle domain models."""

from enum import Enum, IntEnum


class StringEnum(str, Enum):
    """Base enum class with string behavior for JSON serialization."""


class LoanState(IntEnum):
    """Lifecycle states stored by the lending contract (`loans(id).state`)."""

    PENDING = 0
    OPEN = 1
    ACTIVE = 2
    CLOSED = 3
    REJECTED = 4

    @property
    def is_verified(self) -> bool:
        """Return whether the ledger already holds a verification outcome."""
        return self is not LoanState.PENDING


class LoanProcessingState(StringEnum):
    """Per-loan states from the oracle's point of view."""

    UNSEEN = "UNSEEN"
    OBSERVED = "OBSERVED"
    DECIDING = "DECIDING"
    SUBMITTED = "SUBMITTED"
    FAILED_RETRYABLE = "FAILED_RETRYABLE"
    FAILED_TERMINAL = "FAILED_TERMINAL"
    CONFIRMED = "CONFIRMED"


class SubmissionStatus(StringEnum):
    """Persisted status of a verification submission."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not SubmissionStatus.PENDING


class OutcomeKind(StringEnum):
    """How a call to the submitter ended."""

    CONFIRMED = "CONFIRMED"
    ALREADY_FINAL = "ALREADY_FINAL"
    REJECTED = "REJECTED"
    EXHAUSTED = "EXHAUSTED"


class RegistryErrorPolicy(StringEnum):
    """What the verifier does when the registry lookup itself fails."""

    REJECT = "reject"
    RETRY = "retry"
