"""SQLite-backed repository implementations."""

from .sql_cursor_repository import SqlCursorRepository
from .sql_invoice_repository import SqlInvoiceRepository
from .sql_profile_repository import SqlProfileRepository
from .sql_submission_repository import SqlSubmissionRepository

__all__ = [
    "SqlCursorRepository",
    "SqlInvoiceRepository",
    "SqlProfileRepository",
    "SqlSubmissionRepository",
]
