"""SQLite implementation of the submission record store."""

import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select

from core.database_manager import DatabaseManager
from models.base import utc_now
from models.decisions import SubmissionRecord, VerificationDecision
from models.enums import SubmissionStatus
from models.repositories import SubmissionRepository
from models.tables import SubmissionRow


logger = logging.getLogger(__name__)


class SqlSubmissionRepository(SubmissionRepository):
    """Persist one submission row per loan id."""

    def __init__(self, database: DatabaseManager) -> None:
        self._database = database

    def get(self, loan_id: int) -> Optional[SubmissionRecord]:
        try:
            with self._database.session() as session:
                row = session.get(SubmissionRow, int(loan_id))
                return SubmissionRecord.from_row(row) if row is not None else None
        except Exception:
            logger.exception("Failed to read submission loan_id=%s", loan_id)
            raise

    def create_if_absent(self, decision: VerificationDecision) -> SubmissionRecord:
        """Insert a pending row; an existing row wins and is returned unchanged."""
        try:
            with self._database.session() as session:
                row = session.get(SubmissionRow, decision.loan_id)
                if row is None:
                    row = SubmissionRow(
                        loan_id=decision.loan_id,
                        is_valid=decision.is_valid,
                        decided_at_block=decision.decided_at_block,
                        status=SubmissionStatus.PENDING.value,
                        attempts=0,
                        updated_at=utc_now(),
                    )
                    session.add(row)
                    session.flush()
                    logger.info(
                        "Submission record created loan_id=%s is_valid=%s block=%s",
                        decision.loan_id,
                        decision.is_valid,
                        decision.decided_at_block,
                    )
                return SubmissionRecord.from_row(row)
        except Exception:
            logger.exception("Failed to create submission loan_id=%s", decision.loan_id)
            raise

    def save(self, record: SubmissionRecord) -> SubmissionRecord:
        try:
            record.updated_at = utc_now()
            with self._database.session() as session:
                session.merge(
                    SubmissionRow(
                        loan_id=record.loan_id,
                        is_valid=record.is_valid,
                        decided_at_block=record.decided_at_block,
                        tx_hash=record.tx_hash,
                        nonce=record.nonce,
                        status=record.status.value,
                        outcome=record.outcome.value if record.outcome is not None else None,
                        attempts=record.attempts,
                        last_error=record.last_error,
                        updated_at=record.updated_at,
                    )
                )
            return record
        except Exception:
            logger.exception("Failed to save submission loan_id=%s", record.loan_id)
            raise

    def list_pending(self) -> List[SubmissionRecord]:
        try:
            with self._database.session() as session:
                rows = session.scalars(
                    select(SubmissionRow)
                    .where(SubmissionRow.status == SubmissionStatus.PENDING.value)
                    .order_by(SubmissionRow.decided_at_block, SubmissionRow.loan_id)
                ).all()
                return [SubmissionRecord.from_row(row) for row in rows]
        except Exception:
            logger.exception("Failed to list pending submissions.")
            raise

    def count_by_status(self) -> Dict[str, int]:
        try:
            with self._database.session() as session:
                rows = session.execute(
                    select(SubmissionRow.status, func.count()).group_by(SubmissionRow.status)
                ).all()
                return {str(status): int(count) for status, count in rows}
        except Exception:
            logger.exception("Failed to count submissions by status.")
            raise
