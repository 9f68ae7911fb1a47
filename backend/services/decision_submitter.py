"""Serialized submission of verification decisions to the ledger.

One queue and one worker per signing account. The worker owns the nonce
sequence, so two transactions never race for the same nonce.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from core.logging_config import get_alert_logger
from models.decisions import SubmissionOutcome, SubmissionRecord, VerificationDecision
from models.enums import LoanProcessingState, OutcomeKind, SubmissionStatus
from models.exceptions import InvalidStateTransitionError, LedgerError, LedgerRejectedError, LedgerUnavailableError
from models.repositories import SubmissionRepository

from .loan_tracker import LoanStateTracker


logger = logging.getLogger(__name__)
alert_logger = get_alert_logger()

S = LoanProcessingState


class DecisionSubmitter:
    """Turn decisions into confirmed `verifyLoan` transactions, at most once per loan."""

    def __init__(
        self,
        ledger: Any,
        repository: SubmissionRepository,
        tracker: Optional[LoanStateTracker] = None,
        max_attempts: int = 5,
        backoff_base_sec: float = 1.0,
        backoff_max_sec: float = 30.0,
        confirmation_timeout_sec: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Create a submitter.

        Args:
            ledger: `LedgerClient` or any object with the same methods.
            repository: Durable submission records.
            tracker: Shared per-loan state tracker.
            max_attempts: Transient-failure attempts per `submit` call.
            backoff_base_sec: First retry delay; doubles per attempt.
            backoff_max_sec: Upper bound for the retry delay.
            confirmation_timeout_sec: Receipt wait per attempt.
            sleep: Awaitable used between retries.
        """
        self._ledger = ledger
        self._repository = repository
        self._tracker = tracker or LoanStateTracker()
        self._max_attempts = max(1, int(max_attempts))
        self._backoff_base_sec = float(backoff_base_sec)
        self._backoff_max_sec = float(backoff_max_sec)
        self._confirmation_timeout_sec = float(confirmation_timeout_sec)
        self._sleep = sleep
        self._queue: "asyncio.Queue[VerificationDecision]" = asyncio.Queue()
        self._in_flight: Set[int] = set()
        self._next_nonce: Optional[int] = None
        self._worker_failures: Dict[int, int] = {}
        # Broadcast transactions whose record update failed; reused instead of sending again.
        self._unsaved_sends: Dict[int, Tuple[str, int]] = {}
        self._worker: Optional[asyncio.Task] = None

    @property
    def tracker(self) -> LoanStateTracker:
        return self._tracker

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    def is_in_flight(self, loan_id: int) -> bool:
        """Return whether the loan is queued or being submitted right now."""
        return int(loan_id) in self._in_flight

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return min(self._backoff_base_sec * (2 ** max(0, attempt - 1)), self._backoff_max_sec)

    def start(self) -> None:
        """Start the single draining worker."""
        if self._worker and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._run_worker(), name="decision-submitter")
        logger.info("Decision submitter worker started.")

    async def enqueue(self, decision: VerificationDecision) -> bool:
        """Persist and queue a decision; return False if it needs no submission.

        Duplicates of a loan already in flight and loans with a terminal
        record are dropped here.
        """
        if self.is_in_flight(decision.loan_id):
            logger.debug("Decision already in flight loan_id=%s", decision.loan_id)
            return False

        record = await asyncio.to_thread(self._repository.create_if_absent, decision)
        if record.status.is_terminal:
            logger.info(
                "Skipping decision with terminal record loan_id=%s status=%s",
                decision.loan_id,
                record.status.value,
            )
            if record.status is SubmissionStatus.CONFIRMED and not self._tracker.is_final(decision.loan_id):
                self._enter(decision.loan_id)
                self._mark(decision.loan_id, S.CONFIRMED)
            return False

        self._in_flight.add(decision.loan_id)
        self._queue.put_nowait(decision)
        logger.info(
            "Decision queued loan_id=%s is_valid=%s block=%s depth=%d",
            decision.loan_id,
            decision.is_valid,
            decision.decided_at_block,
            self._queue.qsize(),
        )
        return True

    async def drain(self) -> None:
        """Wait until every queued decision reached a terminal outcome."""
        await self._queue.join()

    async def stop(self, timeout_sec: float = 120.0) -> None:
        """Drain the queue, bounded by `timeout_sec`, then stop the worker.

        Records still pending after the timeout stay persisted and are
        resumed at next startup.
        """
        if not self._worker:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=float(timeout_sec))
            logger.info("Decision submitter drained.")
        except asyncio.TimeoutError:
            logger.warning(
                "Decision submitter drain timed out with %d queued decisions; they resume on restart.",
                self._queue.qsize(),
            )
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            logger.info("Decision submitter worker stopped.")
        except Exception:
            logger.exception("Unexpected error while stopping decision submitter.")
        finally:
            self._worker = None

    async def submit(self, decision: VerificationDecision) -> SubmissionOutcome:
        """Drive one decision to a terminal outcome.

        Transient failures are retried with exponential backoff up to
        `max_attempts`; contract rejections are not retried. Both terminal
        failures raise an operator alert.
        """
        record = await asyncio.to_thread(self._repository.create_if_absent, decision)
        if record.status.is_terminal:
            logger.info("Submission already terminal loan_id=%s status=%s", record.loan_id, record.status.value)
            return self._outcome_from_record(record)

        unsaved = self._unsaved_sends.get(record.loan_id)
        if unsaved is not None and record.tx_hash is None:
            record.tx_hash, record.nonce = unsaved
        self._enter(record.loan_id)
        last_error: Optional[str] = None
        for attempt in range(1, self._max_attempts + 1):
            record.attempts += 1
            try:
                return await self._attempt(record)
            except LedgerRejectedError as exc:
                return await self._fail(record, OutcomeKind.REJECTED, str(exc))
            except LedgerUnavailableError as exc:
                last_error = str(exc)
                record.last_error = last_error
                await asyncio.to_thread(self._repository.save, record)
                self._mark(record.loan_id, S.FAILED_RETRYABLE)
                if attempt >= self._max_attempts:
                    break
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Submission attempt failed loan_id=%s attempt=%d/%d retry_in=%.1fs error=%s",
                    record.loan_id,
                    attempt,
                    self._max_attempts,
                    delay,
                    last_error,
                )
                await self._sleep(delay)

        return await self._fail(record, OutcomeKind.EXHAUSTED, last_error or "retries exhausted")

    async def _attempt(self, record: SubmissionRecord) -> SubmissionOutcome:
        """One pre-check + send + confirm cycle."""
        loan = await asyncio.to_thread(self._ledger.get_loan, record.loan_id)
        if loan.state.is_verified:
            kind = OutcomeKind.CONFIRMED if record.tx_hash else OutcomeKind.ALREADY_FINAL
            logger.info(
                "Ledger already holds outcome loan_id=%s state=%s. No transaction sent.",
                record.loan_id,
                loan.state.name,
            )
            return await self._confirm(record, kind)

        if record.tx_hash:
            receipt_status = await asyncio.to_thread(self._ledger.get_receipt_status, record.tx_hash)
            if receipt_status == 1:
                return await self._confirm(record, OutcomeKind.CONFIRMED)
            if receipt_status == 0:
                raise LedgerRejectedError("Transaction {0} reverted".format(record.tx_hash))
            # Not mined: resend with the same nonce so it replaces the earlier one.
            nonce = record.nonce if record.nonce is not None else await self._take_nonce()
        else:
            nonce = await self._take_nonce()

        try:
            tx_hash = await asyncio.to_thread(
                self._ledger.send_verification,
                record.loan_id,
                record.is_valid,
                nonce,
            )
        except LedgerError:
            self._next_nonce = None
            raise

        record.tx_hash = tx_hash
        record.nonce = nonce
        self._unsaved_sends[record.loan_id] = (tx_hash, nonce)
        await asyncio.to_thread(self._repository.save, record)
        self._mark(record.loan_id, S.SUBMITTED)

        await asyncio.to_thread(self._ledger.wait_for_confirmation, tx_hash, self._confirmation_timeout_sec)
        logger.info(
            "Verification confirmed loan_id=%s is_valid=%s tx_hash=%s",
            record.loan_id,
            record.is_valid,
            tx_hash,
        )
        return await self._confirm(record, OutcomeKind.CONFIRMED)

    async def _take_nonce(self) -> int:
        """Hand out the next nonce; refetch from the ledger after any send failure."""
        if self._next_nonce is None:
            self._next_nonce = await asyncio.to_thread(self._ledger.get_pending_nonce)
        nonce = self._next_nonce
        self._next_nonce += 1
        return nonce

    async def _confirm(self, record: SubmissionRecord, kind: OutcomeKind) -> SubmissionOutcome:
        record.status = SubmissionStatus.CONFIRMED
        record.outcome = kind
        record.last_error = None
        await asyncio.to_thread(self._repository.save, record)
        self._unsaved_sends.pop(record.loan_id, None)
        self._mark(record.loan_id, S.CONFIRMED)
        return SubmissionOutcome(
            loan_id=record.loan_id,
            kind=kind,
            is_valid=record.is_valid,
            tx_hash=record.tx_hash,
            attempts=record.attempts,
        )

    async def _fail(self, record: SubmissionRecord, kind: OutcomeKind, error: str) -> SubmissionOutcome:
        record.status = SubmissionStatus.FAILED
        record.outcome = kind
        record.last_error = error
        await asyncio.to_thread(self._repository.save, record)
        self._unsaved_sends.pop(record.loan_id, None)
        self._mark(record.loan_id, S.FAILED_TERMINAL)
        alert_logger.critical(
            "Verification submission %s loan_id=%s is_valid=%s attempts=%d tx_hash=%s nonce=%s error=%s",
            kind.value,
            record.loan_id,
            record.is_valid,
            record.attempts,
            record.tx_hash,
            record.nonce,
            error,
        )
        return SubmissionOutcome(
            loan_id=record.loan_id,
            kind=kind,
            is_valid=record.is_valid,
            tx_hash=record.tx_hash,
            attempts=record.attempts,
            error=error,
        )

    def _outcome_from_record(self, record: SubmissionRecord) -> SubmissionOutcome:
        if record.status is SubmissionStatus.CONFIRMED:
            kind = OutcomeKind.ALREADY_FINAL
        else:
            kind = record.outcome or OutcomeKind.EXHAUSTED
        return SubmissionOutcome(
            loan_id=record.loan_id,
            kind=kind,
            is_valid=record.is_valid,
            tx_hash=record.tx_hash,
            attempts=record.attempts,
            error=record.last_error,
        )

    def _enter(self, loan_id: int) -> None:
        """Bring loans that skipped the watcher (resumed, reconciled) to DECIDING."""
        if self._tracker.state_of(loan_id) is S.UNSEEN:
            self._tracker.observe(loan_id)
        if self._tracker.state_of(loan_id) is S.OBSERVED:
            self._tracker.transition(loan_id, S.DECIDING)

    def _mark(self, loan_id: int, target: LoanProcessingState) -> None:
        if self._tracker.state_of(loan_id) is target:
            return
        self._tracker.transition(loan_id, target)

    async def _run_worker(self) -> None:
        """Drain decisions one at a time; unexpected errors re-queue the decision."""
        logger.info("Decision submitter loop running.")
        while True:
            decision = await self._queue.get()
            requeue = False
            try:
                outcome = await self.submit(decision)
                self._worker_failures.pop(decision.loan_id, None)
                logger.info(
                    "Submission finished loan_id=%s kind=%s attempts=%d",
                    outcome.loan_id,
                    outcome.kind.value,
                    outcome.attempts,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                requeue = await self._handle_worker_error(decision, exc)
            finally:
                if requeue:
                    # Put back before task_done so `drain` keeps waiting for it.
                    self._queue.put_nowait(decision)
                else:
                    self._in_flight.discard(decision.loan_id)
                self._queue.task_done()

    async def _handle_worker_error(self, decision: VerificationDecision, exc: Exception) -> bool:
        """Back off and return True to retry, or give up with an alert after `max_attempts`."""
        failures = self._worker_failures.get(decision.loan_id, 0) + 1
        self._worker_failures[decision.loan_id] = failures
        if failures < self._max_attempts:
            delay = self.backoff_delay(failures)
            logger.exception(
                "Unexpected error submitting loan_id=%s failure=%d/%d retry_in=%.1fs",
                decision.loan_id,
                failures,
                self._max_attempts,
                delay,
            )
            await self._sleep(delay)
            return True

        self._worker_failures.pop(decision.loan_id, None)
        self._unsaved_sends.pop(decision.loan_id, None)
        logger.exception("Unexpected error submitting loan_id=%s; giving up.", decision.loan_id)
        try:
            record = await asyncio.to_thread(self._repository.get, decision.loan_id)
            if record is not None and not record.status.is_terminal:
                record.status = SubmissionStatus.FAILED
                record.outcome = OutcomeKind.EXHAUSTED
                record.last_error = str(exc)
                await asyncio.to_thread(self._repository.save, record)
        except Exception:
            logger.exception("Failed to mark submission failed loan_id=%s; it resumes on restart.", decision.loan_id)
        try:
            if not self._tracker.is_final(decision.loan_id):
                self._enter(decision.loan_id)
                self._mark(decision.loan_id, S.FAILED_TERMINAL)
        except InvalidStateTransitionError:
            logger.exception("Could not mark loan_id=%s failed in tracker.", decision.loan_id)
        alert_logger.critical(
            "Verification submission %s loan_id=%s is_valid=%s failures=%d error=%s",
            OutcomeKind.EXHAUSTED.value,
            decision.loan_id,
            decision.is_valid,
            failures,
            exc,
        )
        return False
