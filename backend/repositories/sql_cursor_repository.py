"""SQLite implementation of the scan cursor store."""

import logging
from typing import Optional

from core.database_manager import DatabaseManager
from models.base import utc_now
from models.repositories import CursorRepository
from models.tables import ScanCursorRow


logger = logging.getLogger(__name__)


class SqlCursorRepository(CursorRepository):
    """Keep the last processed block in a single named row."""

    def __init__(self, database: DatabaseManager, name: str = "loan_created") -> None:
        self._database = database
        self._name = name

    def load(self) -> Optional[int]:
        try:
            with self._database.session() as session:
                row = session.get(ScanCursorRow, self._name)
                return int(row.last_processed_block) if row is not None else None
        except Exception:
            logger.exception("Failed to load scan cursor name=%s", self._name)
            raise

    def store(self, last_processed_block: int) -> None:
        try:
            with self._database.session() as session:
                session.merge(
                    ScanCursorRow(
                        name=self._name,
                        last_processed_block=int(last_processed_block),
                        updated_at=utc_now(),
                    )
                )
        except Exception:
            logger.exception("Failed to store scan cursor name=%s block=%s", self._name, last_processed_block)
            raise
