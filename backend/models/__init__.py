"""Public model package exports for the ChainVoice oracle backend."""

from .base import Address, FixedPoint, FrozenOracleModel, OracleBaseModel
from .cursor import ScanCursor
from .decisions import SubmissionOutcome, SubmissionRecord, VerificationDecision
from .enums import (
    LoanProcessingState,
    LoanState,
    OutcomeKind,
    RegistryErrorPolicy,
    SubmissionStatus,
)
from .exceptions import (
    CursorRegressionError,
    InvalidStateTransitionError,
    LedgerError,
    LedgerRejectedError,
    LedgerUnavailableError,
    ModelError,
    ModelValidationError,
    OracleError,
    RegistryUnavailableError,
)
from .invoices import InvoiceRecord
from .loans import LoanCreationEvent, LoanRecord
from .profiles import ProfileModel

__all__ = [
    "Address",
    "FixedPoint",
    "OracleBaseModel",
    "FrozenOracleModel",
    "LoanCreationEvent",
    "LoanRecord",
    "InvoiceRecord",
    "VerificationDecision",
    "SubmissionRecord",
    "SubmissionOutcome",
    "ProfileModel",
    "ScanCursor",
    "LoanState",
    "LoanProcessingState",
    "SubmissionStatus",
    "OutcomeKind",
    "RegistryErrorPolicy",
    "ModelError",
    "ModelValidationError",
    "OracleError",
    "LedgerError",
    "LedgerUnavailableError",
    "LedgerRejectedError",
    "RegistryUnavailableError",
    "CursorRegressionError",
    "InvalidStateTransitionError",
]
