"""SQLite implementation of the invoice registry."""

import logging
from typing import Optional

from core.database_manager import DatabaseManager
from models.invoices import InvoiceRecord
from models.repositories import InvoiceRepository
from models.tables import InvoiceRow


logger = logging.getLogger(__name__)


class SqlInvoiceRepository(InvoiceRepository):
    """Look up tax invoices in the embedded registry table."""

    def __init__(self, database: DatabaseManager) -> None:
        self._database = database

    def get_by_number(self, invoice_number: str) -> Optional[InvoiceRecord]:
        """Exact, case-sensitive match on the invoice number."""
        try:
            with self._database.session() as session:
                row = session.get(InvoiceRow, invoice_number)
                if row is None:
                    return None
                return InvoiceRecord.from_row(row)
        except Exception:
            logger.exception("Failed to look up invoice_number=%s", invoice_number)
            raise

    def upsert(self, record: InvoiceRecord) -> InvoiceRecord:
        try:
            with self._database.session() as session:
                session.merge(
                    InvoiceRow(
                        invoice_number=record.invoice_number,
                        seller_tax_id=record.seller_tax_id,
                        total_amount=record.total_amount,
                    )
                )
            logger.info("Invoice upserted invoice_number=%s", record.invoice_number)
            return record
        except Exception:
            logger.exception("Failed to upsert invoice_number=%s", record.invoice_number)
            raise
