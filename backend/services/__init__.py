"""Service layer exports."""

from .chain_watcher import ChainWatcher, TickResult
from .decision_submitter import DecisionSubmitter
from .invoice_verifier import InvoiceVerifier
from .loan_tracker import ALLOWED_TRANSITIONS, LoanStateTracker
from .oracle_service import OracleService

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ChainWatcher",
    "DecisionSubmitter",
    "InvoiceVerifier",
    "LoanStateTracker",
    "OracleService",
    "TickResult",
]
