"""Repository interfaces for datastore-agnostic model access."""

from abc import ABC, abstractmethod
import logging
from typing import List, Optional

from .decisions import SubmissionRecord, VerificationDecision
from .invoices import InvoiceRecord
from .profiles import ProfileModel


logger = logging.getLogger(__name__)


class InvoiceRepository(ABC):
    """Read access to the authoritative invoice registry."""

    @abstractmethod
    def get_by_number(self, invoice_number: str) -> Optional[InvoiceRecord]:
        """Return the invoice with this exact number, or None.

        Raises:
            Exception: Any storage failure propagates to the caller.
        """

    @abstractmethod
    def upsert(self, record: InvoiceRecord) -> InvoiceRecord:
        """Insert or replace an invoice (seeding and tests only)."""


class SubmissionRepository(ABC):
    """Durable per-loan submission records."""

    @abstractmethod
    def get(self, loan_id: int) -> Optional[SubmissionRecord]:
        """Return the record for a loan, or None."""

    @abstractmethod
    def create_if_absent(self, decision: VerificationDecision) -> SubmissionRecord:
        """Persist a pending record for the decision unless one exists; return the stored one."""

    @abstractmethod
    def save(self, record: SubmissionRecord) -> SubmissionRecord:
        """Overwrite the stored record for `record.loan_id`."""

    @abstractmethod
    def list_pending(self) -> List[SubmissionRecord]:
        """Return non-terminal records ordered by decision block, then loan id."""

    @abstractmethod
    def count_by_status(self) -> dict:
        """Return `{status: count}`."""


class CursorRepository(ABC):
    """Durable storage for the watcher's scan cursor."""

    @abstractmethod
    def load(self) -> Optional[int]:
        """Return the persisted last processed block, or None."""

    @abstractmethod
    def store(self, last_processed_block: int) -> None:
        """Persist the last processed block."""


class ProfileRepository(ABC):
    """Business profile key-value store."""

    @abstractmethod
    def upsert(self, model: ProfileModel) -> ProfileModel:
        """Insert or replace a profile keyed by wallet address."""

    @abstractmethod
    def get_by_address(self, wallet_address: str) -> Optional[ProfileModel]:
        """Return the profile or None."""
