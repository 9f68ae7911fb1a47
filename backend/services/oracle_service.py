"""Background oracle service: watch the ledger, verify invoices, submit decisions."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from common.contract_abi import FIRST_LOAN_ID
from core.config import AppSettings
from core.database_manager import DatabaseManager
from core.ledger_client import LedgerClient
from models.decisions import VerificationDecision
from models.enums import LoanProcessingState, RegistryErrorPolicy, SubmissionStatus
from models.exceptions import OracleError
from models.loans import LoanCreationEvent
from models.repositories import CursorRepository, SubmissionRepository
from repositories.sql_cursor_repository import SqlCursorRepository
from repositories.sql_invoice_repository import SqlInvoiceRepository
from repositories.sql_submission_repository import SqlSubmissionRepository

from .chain_watcher import ChainWatcher, TickResult
from .decision_submitter import DecisionSubmitter
from .invoice_verifier import InvoiceVerifier
from .loan_tracker import LoanStateTracker


logger = logging.getLogger(__name__)

S = LoanProcessingState


class OracleService:
    """Drive the watcher on a timer and feed its batches through verifier and submitter."""

    def __init__(
        self,
        ledger: Any,
        verifier: InvoiceVerifier,
        submitter: DecisionSubmitter,
        submissions: SubmissionRepository,
        cursor_repository: Optional[CursorRepository] = None,
        poll_interval_sec: float = 3.0,
        max_block_range: int = 1000,
        start_block: Optional[int] = None,
        resync_lookback_blocks: int = 1000,
        shutdown_timeout_sec: float = 120.0,
        reconcile_on_startup: bool = True,
    ) -> None:
        self._ledger = ledger
        self._verifier = verifier
        self._submitter = submitter
        self._submissions = submissions
        self._tracker: LoanStateTracker = submitter.tracker
        self._poll_interval_sec = float(poll_interval_sec)
        self._shutdown_timeout_sec = float(shutdown_timeout_sec)
        self._reconcile_on_startup = reconcile_on_startup
        self._watcher = ChainWatcher(
            ledger=ledger,
            handler=self.handle_batch,
            cursor_repository=cursor_repository,
            max_block_range=max_block_range,
            start_block=start_block,
            resync_lookback_blocks=resync_lookback_blocks,
        )
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._last_tick: Optional[TickResult] = None

    @staticmethod
    def is_config_complete(settings: AppSettings) -> bool:
        """Validate required runtime configuration values."""
        return all(
            [
                settings.oracle_rpc_url,
                settings.oracle_contract_address,
                settings.oracle_private_key,
            ]
        )

    @classmethod
    def from_settings(cls, settings: AppSettings, database: DatabaseManager) -> "OracleService":
        """Build the production wiring: Web3 ledger client and SQLite repositories."""
        try:
            ledger = LedgerClient(
                rpc_url=settings.oracle_rpc_url or "",
                contract_address=settings.oracle_contract_address or "",
                abi_json=settings.oracle_contract_abi_json,
                private_key=settings.oracle_private_key,
                chain_id=settings.oracle_chain_id,
                gas_limit=settings.oracle_gas_limit,
                gas_price_gwei=settings.oracle_gas_price_gwei,
                request_timeout_sec=settings.oracle_request_timeout_sec,
            )
            submissions = SqlSubmissionRepository(database)
            submitter = DecisionSubmitter(
                ledger=ledger,
                repository=submissions,
                tracker=LoanStateTracker(),
                max_attempts=settings.oracle_submit_max_attempts,
                backoff_base_sec=settings.oracle_backoff_base_sec,
                backoff_max_sec=settings.oracle_backoff_max_sec,
                confirmation_timeout_sec=settings.oracle_confirmation_timeout_sec,
            )
            verifier = InvoiceVerifier(
                registry=SqlInvoiceRepository(database),
                error_policy=RegistryErrorPolicy(settings.oracle_registry_error_policy),
            )
            return cls(
                ledger=ledger,
                verifier=verifier,
                submitter=submitter,
                submissions=submissions,
                cursor_repository=SqlCursorRepository(database),
                poll_interval_sec=settings.oracle_poll_interval_sec,
                max_block_range=settings.oracle_max_block_range,
                start_block=settings.oracle_start_block,
                resync_lookback_blocks=settings.oracle_resync_lookback_blocks,
                shutdown_timeout_sec=settings.oracle_shutdown_timeout_sec,
                reconcile_on_startup=settings.oracle_reconcile_on_startup,
            )
        except Exception:
            logger.exception("Failed to build oracle service from settings.")
            raise

    @property
    def watcher(self) -> ChainWatcher:
        return self._watcher

    @property
    def submitter(self) -> DecisionSubmitter:
        return self._submitter

    @property
    def is_running(self) -> bool:
        return bool(self._task and not self._task.done())

    async def start(self) -> None:
        """Resume unfinished work, then start the submitter and polling loop."""
        if self.is_running:
            logger.info("Oracle service already running.")
            return

        await self.resume_pending_submissions()
        if self._reconcile_on_startup:
            await self.reconcile_pending_loans()

        self._submitter.start()
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="oracle-watcher")
        logger.info("Oracle service started poll_interval=%.1fs", self._poll_interval_sec)

    async def stop(self) -> None:
        """Stop the timer, finish the current tick, and drain in-flight submissions."""
        if self._task:
            self._stop_event.set()
            try:
                await asyncio.wait_for(self._task, timeout=self._shutdown_timeout_sec)
            except asyncio.TimeoutError:
                logger.warning("Watcher loop did not finish within %.1fs; cancelled.", self._shutdown_timeout_sec)
            except asyncio.CancelledError:
                logger.info("Watcher loop cancelled.")
            except Exception:
                logger.exception("Unexpected error while stopping watcher loop.")
            finally:
                self._task = None
        await self._submitter.stop(timeout_sec=self._shutdown_timeout_sec)
        logger.info("Oracle service stopped.")

    async def poll_once(self) -> TickResult:
        """Run a single watcher tick (used by the loop and by tests)."""
        result = await self._watcher.tick()
        self._last_tick = result
        return result

    async def handle_batch(self, events: List[LoanCreationEvent]) -> None:
        """Verify a batch in parallel and queue decisions in block order.

        Raises:
            OracleError: If verification is deferred; the watcher then keeps
                its cursor and the batch is delivered again.
        """
        candidates: List[LoanCreationEvent] = []
        for event in events:
            logger.info(
                "New loan request loan_id=%s borrower=%s invoice=%s block=%s",
                event.loan_id,
                event.borrower,
                event.invoice_number,
                event.block_height,
            )
            if self._submitter.is_in_flight(event.loan_id) or not self._tracker.observe(event.loan_id):
                logger.info("Loan already handled or in flight loan_id=%s", event.loan_id)
                continue
            if not await self._claim(event.loan_id):
                continue
            candidates.append(event)

        if not candidates:
            return

        results = await asyncio.gather(
            *(asyncio.to_thread(self._verifier.verify, event.invoice_number) for event in candidates)
        )
        for event, is_valid in zip(candidates, results):
            await self._submitter.enqueue(
                VerificationDecision(
                    loan_id=event.loan_id,
                    is_valid=bool(is_valid),
                    decided_at_block=event.block_height,
                    invoice_number=event.invoice_number,
                )
            )

    async def resume_pending_submissions(self) -> int:
        """Re-queue submissions left pending by a previous run."""
        try:
            records = await asyncio.to_thread(self._submissions.list_pending)
        except Exception:
            logger.exception("Failed to load pending submissions.")
            return 0

        resumed = 0
        for record in records:
            if self._submitter.is_in_flight(record.loan_id) or not self._tracker.observe(record.loan_id):
                continue
            self._tracker.transition(record.loan_id, S.DECIDING)
            if await self._submitter.enqueue(record.to_decision()):
                resumed += 1
        if resumed:
            logger.info("Resumed %d pending submissions.", resumed)
        return resumed

    async def reconcile_pending_loans(self) -> int:
        """Queue decisions for ledger loans still PENDING, whatever the cursor says.

        Covers loans created while the oracle was down and before the range
        the cursor will scan. Failures stop reconciliation but not startup.
        """
        queued = 0
        try:
            next_loan_id = await asyncio.to_thread(self._ledger.get_next_loan_id)
            head = await asyncio.to_thread(self._ledger.get_block_number)
            for loan_id in range(FIRST_LOAN_ID, next_loan_id):
                if self._submitter.is_in_flight(loan_id):
                    continue
                loan = await asyncio.to_thread(self._ledger.get_loan, loan_id)
                if not loan.exists or loan.state.is_verified:
                    continue
                if not self._tracker.observe(loan_id) or not await self._claim(loan_id):
                    continue
                is_valid = await asyncio.to_thread(self._verifier.verify, loan.invoice_number)
                decision = VerificationDecision(
                    loan_id=loan_id,
                    is_valid=is_valid,
                    decided_at_block=head,
                    invoice_number=loan.invoice_number,
                )
                if await self._submitter.enqueue(decision):
                    queued += 1
        except OracleError as exc:
            logger.warning("Startup reconciliation stopped early after %d loans: %s", queued, exc)
        if queued:
            logger.info("Startup reconciliation queued %d pending loans.", queued)
        return queued

    async def status(self) -> Dict[str, Any]:
        """Snapshot for the status endpoint."""
        cursor = self._watcher.cursor
        try:
            submissions = await asyncio.to_thread(self._submissions.count_by_status)
        except Exception:
            logger.exception("Failed to count submissions for status.")
            submissions = {}
        health = await asyncio.to_thread(self._ledger.health)
        last_tick = self._last_tick
        return {
            "running": self.is_running,
            "last_processed_block": cursor.last_processed_block if cursor else None,
            "queue_depth": self._submitter.queue_depth,
            "loan_states": self._tracker.counts(),
            "submissions": submissions,
            "ledger": health,
            "last_tick": None
            if last_tick is None
            else {
                "from_block": last_tick.from_block,
                "to_block": last_tick.to_block,
                "event_count": last_tick.event_count,
                "advanced": last_tick.advanced,
                "error": last_tick.error,
            },
        }

    async def _claim(self, loan_id: int) -> bool:
        """Move an observed loan to DECIDING unless a terminal record settles it."""
        record = await asyncio.to_thread(self._submissions.get, loan_id)
        if record is not None and record.status is SubmissionStatus.CONFIRMED:
            self._tracker.transition(loan_id, S.CONFIRMED)
            logger.info("Loan already confirmed loan_id=%s tx_hash=%s", loan_id, record.tx_hash)
            return False
        self._tracker.transition(loan_id, S.DECIDING)
        if record is not None and record.status is SubmissionStatus.FAILED:
            self._tracker.transition(loan_id, S.FAILED_TERMINAL)
            logger.warning("Loan has a failed submission awaiting operator loan_id=%s", loan_id)
            return False
        return True

    async def _run_loop(self) -> None:
        """Main polling loop."""
        logger.info("Oracle watcher loop running.")
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Unhandled error during oracle poll cycle.")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval_sec)
            except asyncio.TimeoutError:
                continue
