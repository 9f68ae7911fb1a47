"""Ledger-side loan models: creation events and stored loan records."""

import logging
from typing import Optional

from pydantic import Field, field_validator

from .base import Address, FixedPoint, FrozenOracleModel
from .enums import LoanState


logger = logging.getLogger(__name__)


class LoanCreationEvent(FrozenOracleModel):
    """A decoded `LoanCreated` log. Produced only by the ledger."""

    loan_id: int = Field(..., ge=0)
    borrower: Address = Field(..., min_length=1)
    requested_amount: FixedPoint = Field(..., ge=0)
    invoice_number: str = Field(default="")
    duration_seconds: int = Field(default=0, ge=0)
    block_height: int = Field(..., ge=0)
    log_index: int = Field(default=0, ge=0)
    tx_hash: Optional[str] = Field(default=None)

    @property
    def ordering_key(self) -> tuple:
        """Deterministic processing order inside a batch."""
        return (self.block_height, self.log_index)


class LoanRecord(FrozenOracleModel):
    """Snapshot returned by the contract's `loans(loanId)` view."""

    loan_id: int = Field(..., ge=0)
    borrower: Address
    amount_requested: FixedPoint = Field(default=0, ge=0)
    amount_funded: FixedPoint = Field(default=0, ge=0)
    ipfs_hash: str = Field(default="")
    invoice_number: str = Field(default="")
    interest_rate: int = Field(default=0, ge=0)
    state: LoanState = Field(default=LoanState.PENDING)

    @field_validator("state", mode="before")
    @classmethod
    def _coerce_state(cls, value):
        """Accept raw uint8 values from the contract."""
        try:
            return LoanState(int(value))
        except (TypeError, ValueError):
            logger.exception("Unknown loan state value=%s", value)
            raise

    @property
    def exists(self) -> bool:
        """Unknown ids come back from the contract with a zero borrower."""
        try:
            return int(self.borrower, 16) != 0
        except ValueError:
            return bool(self.borrower)
