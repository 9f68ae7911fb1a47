"""Create the oracle tables and seed the invoice registry."""

import argparse
import logging
from pathlib import Path
import sys


BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from core import DatabaseManager, load_settings
from models.invoices import InvoiceRecord
from repositories import SqlInvoiceRepository


logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger(__name__)

SEED_INVOICES = [
    InvoiceRecord(invoice_number="INV-2024-001", seller_tax_id="1234567890", total_amount=50000000),
]


def main() -> None:
    """Ensure schema and upsert seed invoices."""
    parser = argparse.ArgumentParser(description="Initialize and seed the ChainVoice registry database.")
    parser.add_argument("--database-url", type=str, default=None, help="Override database.url from config.yml.")
    args = parser.parse_args()

    settings = load_settings()
    database = DatabaseManager(args.database_url or settings.database_url, timeout_sec=settings.database_timeout_sec)
    database.create_schema()

    registry = SqlInvoiceRepository(database)
    for record in SEED_INVOICES:
        registry.upsert(record)
    logger.info("Database initialized & seeded invoices=%d", len(SEED_INVOICES))


if __name__ == "__main__":
    main()
