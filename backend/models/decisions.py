"""Verification decision and submission tracking models."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import FrozenOracleModel, OracleBaseModel, utc_now
from .enums import OutcomeKind, SubmissionStatus


class VerificationDecision(FrozenOracleModel):
    """Verifier output for one loan, consumed once by the submitter."""

    loan_id: int = Field(..., ge=0)
    is_valid: bool
    decided_at_block: int = Field(..., ge=0)
    invoice_number: str = Field(default="")


class SubmissionRecord(OracleBaseModel):
    """Persisted lifecycle of the single submission allowed per loan."""

    loan_id: int = Field(..., ge=0)
    is_valid: bool
    decided_at_block: int = Field(default=0, ge=0)
    tx_hash: Optional[str] = Field(default=None)
    nonce: Optional[int] = Field(default=None, ge=0)
    status: SubmissionStatus = Field(default=SubmissionStatus.PENDING)
    outcome: Optional[OutcomeKind] = Field(default=None, description="How the terminal status was reached.")
    attempts: int = Field(default=0, ge=0)
    last_error: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_decision(self) -> VerificationDecision:
        """Rebuild the decision this record was created from."""
        return VerificationDecision(
            loan_id=self.loan_id,
            is_valid=self.is_valid,
            decided_at_block=self.decided_at_block,
        )


class SubmissionOutcome(FrozenOracleModel):
    """Result of one `DecisionSubmitter.submit` call."""

    loan_id: int = Field(..., ge=0)
    kind: OutcomeKind
    is_valid: bool
    tx_hash: Optional[str] = Field(default=None)
    attempts: int = Field(default=0, ge=0)
    error: Optional[str] = Field(default=None)

    @property
    def is_confirmed(self) -> bool:
        """Return whether the ledger holds a verification outcome for the loan."""
        return self.kind in {OutcomeKind.CONFIRMED, OutcomeKind.ALREADY_FINAL}
