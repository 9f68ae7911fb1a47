"""Unit tests for serialized, idempotent verification submission."""

from pathlib import Path
import sys
import unittest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.decisions import VerificationDecision
from models.enums import LoanProcessingState, LoanState, OutcomeKind, SubmissionStatus
from models.exceptions import LedgerRejectedError, LedgerUnavailableError
from repositories import SqlSubmissionRepository
from services.decision_submitter import DecisionSubmitter
from services.loan_tracker import LoanStateTracker
from oracle_fakes import FakeLedgerClient, RecordingSleep, make_database, no_sleep


S = LoanProcessingState


class RevertingLedger(FakeLedgerClient):
    """Ledger whose contract rejects every verification call."""

    def send_verification(self, loan_id: int, is_valid: bool, nonce: int) -> str:
        raise LedgerRejectedError("execution reverted: Only oracle can verify")


class LateReceiptLedger(FakeLedgerClient):
    """Ledger that mines the first transaction but times out the receipt wait."""

    def __init__(self) -> None:
        super().__init__()
        self.waits = 0

    def wait_for_confirmation(self, tx_hash: str, timeout_sec: float) -> None:
        self.waits += 1
        super().wait_for_confirmation(tx_hash, timeout_sec)
        if self.waits == 1:
            raise LedgerUnavailableError("receipt wait timed out")


class LockedSubmissionRepository(SqlSubmissionRepository):
    """Submission store whose writes always fail."""

    def save(self, record):
        raise RuntimeError("database is locked")


def decision_for(loan_id: int, is_valid: bool = True, block: int = 10) -> VerificationDecision:
    return VerificationDecision(loan_id=loan_id, is_valid=is_valid, decided_at_block=block)


class DecisionSubmitterTests(unittest.IsolatedAsyncioTestCase):
    """Submission is serialized, retried on transient errors and never repeated."""

    async def asyncSetUp(self) -> None:
        self.database = make_database()
        self.repository = SqlSubmissionRepository(self.database)
        self.ledger = FakeLedgerClient()
        self.sleep = RecordingSleep()
        self.submitter = self._submitter(self.ledger)

    def _submitter(self, ledger, **kwargs) -> DecisionSubmitter:
        kwargs.setdefault("max_attempts", 5)
        kwargs.setdefault("sleep", self.sleep)
        return DecisionSubmitter(ledger=ledger, repository=self.repository, **kwargs)

    async def test_valid_decision_is_confirmed(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)

        outcome = await self.submitter.submit(decision_for(1))

        self.assertIs(outcome.kind, OutcomeKind.CONFIRMED)
        self.assertTrue(outcome.is_confirmed)
        self.assertEqual(outcome.attempts, 1)
        self.assertEqual(self.ledger.state_changes, [(1, LoanState.OPEN)])
        record = self.repository.get(1)
        self.assertIs(record.status, SubmissionStatus.CONFIRMED)
        self.assertEqual(record.tx_hash, outcome.tx_hash)
        self.assertEqual(record.nonce, 0)
        self.assertIs(self.submitter.tracker.state_of(1), S.CONFIRMED)

    async def test_invalid_decision_rejects_loan(self) -> None:
        self.ledger.add_loan(2, "FAKE-999", block_height=10)

        outcome = await self.submitter.submit(decision_for(2, is_valid=False))

        self.assertIs(outcome.kind, OutcomeKind.CONFIRMED)
        self.assertFalse(outcome.is_valid)
        self.assertEqual(self.ledger.state_changes, [(2, LoanState.REJECTED)])

    async def test_second_submit_sends_nothing(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)
        await self.submitter.submit(decision_for(1))

        again = await self.submitter.submit(decision_for(1))

        self.assertIs(again.kind, OutcomeKind.ALREADY_FINAL)
        self.assertEqual(len(self.ledger.sent), 1)

    async def test_precheck_skips_loan_already_verified_on_ledger(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)
        self.ledger.set_state(1, LoanState.OPEN)

        outcome = await self.submitter.submit(decision_for(1))

        self.assertIs(outcome.kind, OutcomeKind.ALREADY_FINAL)
        self.assertEqual(self.ledger.sent, [])
        self.assertIs(self.repository.get(1).status, SubmissionStatus.CONFIRMED)

    async def test_transient_send_failures_are_retried_with_backoff(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)
        self.ledger.fail_sends = 2

        outcome = await self.submitter.submit(decision_for(1))

        self.assertIs(outcome.kind, OutcomeKind.CONFIRMED)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(self.sleep.delays, [1.0, 2.0])
        self.assertEqual(len(self.ledger.sent), 1)
        self.assertIsNone(self.repository.get(1).last_error)

    async def test_backoff_is_capped(self) -> None:
        submitter = self._submitter(self.ledger, backoff_base_sec=2.0, backoff_max_sec=5.0)
        self.assertEqual([submitter.backoff_delay(n) for n in (1, 2, 3, 4)], [2.0, 4.0, 5.0, 5.0])

    async def test_exhausted_retries_fail_terminal_with_alert(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)
        self.ledger.fail_sends = 10
        submitter = self._submitter(self.ledger, max_attempts=3)

        with self.assertLogs("chainvoice.alerts", level="CRITICAL") as captured:
            outcome = await submitter.submit(decision_for(1))

        self.assertIs(outcome.kind, OutcomeKind.EXHAUSTED)
        self.assertEqual(outcome.attempts, 3)
        self.assertIn("read timed out", outcome.error)
        self.assertEqual(self.sleep.delays, [1.0, 2.0])
        self.assertIn("loan_id=1", captured.output[0])
        record = self.repository.get(1)
        self.assertIs(record.status, SubmissionStatus.FAILED)
        self.assertIs(submitter.tracker.state_of(1), S.FAILED_TERMINAL)

    async def test_contract_rejection_is_not_retried(self) -> None:
        ledger = RevertingLedger()
        ledger.add_loan(1, "INV-2024-001", block_height=10)
        submitter = self._submitter(ledger)

        with self.assertLogs("chainvoice.alerts", level="CRITICAL"):
            outcome = await submitter.submit(decision_for(1))

        self.assertIs(outcome.kind, OutcomeKind.REJECTED)
        self.assertEqual(outcome.attempts, 1)
        self.assertEqual(self.sleep.delays, [])
        self.assertIs(self.repository.get(1).status, SubmissionStatus.FAILED)

    async def test_failed_record_is_not_resubmitted(self) -> None:
        ledger = RevertingLedger()
        ledger.add_loan(1, "INV-2024-001", block_height=10)
        with self.assertLogs("chainvoice.alerts", level="CRITICAL"):
            await self._submitter(ledger).submit(decision_for(1))

        outcome = await self._submitter(self.ledger).submit(decision_for(1))

        self.assertIs(outcome.kind, OutcomeKind.REJECTED)
        self.assertEqual(self.ledger.sent, [])

    async def test_rejection_on_last_attempt_is_reported_as_rejected(self) -> None:
        ledger = RevertingLedger()
        ledger.add_loan(1, "INV-2024-001", block_height=10)
        with self.assertLogs("chainvoice.alerts", level="CRITICAL"):
            first = await self._submitter(ledger, max_attempts=1).submit(decision_for(1))

        again = await self._submitter(ledger, max_attempts=1).submit(decision_for(1))

        self.assertIs(first.kind, OutcomeKind.REJECTED)
        self.assertIs(again.kind, OutcomeKind.REJECTED)
        self.assertIs(self.repository.get(1).outcome, OutcomeKind.REJECTED)

    async def test_worker_gives_up_on_persistent_storage_errors(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)
        submitter = DecisionSubmitter(
            ledger=self.ledger,
            repository=LockedSubmissionRepository(self.database),
            max_attempts=2,
            sleep=self.sleep,
        )

        self.assertTrue(await submitter.enqueue(decision_for(1)))
        submitter.start()
        with self.assertLogs("chainvoice.alerts", level="CRITICAL") as captured:
            await submitter.drain()
        await submitter.stop(timeout_sec=1)

        self.assertIn("EXHAUSTED loan_id=1", captured.output[0])
        self.assertEqual(self.sleep.delays, [1.0])
        # The broadcast transaction is replaced, never sent with a fresh nonce.
        self.assertEqual([tx["nonce"] for tx in self.ledger.sent], [0, 0])
        self.assertFalse(submitter.is_in_flight(1))
        self.assertIs(submitter.tracker.state_of(1), S.FAILED_TERMINAL)
        self.assertIs(self.repository.get(1).status, SubmissionStatus.PENDING)

    async def test_unconfirmed_transaction_is_replaced_with_same_nonce(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)
        self.ledger.fail_confirmations = 1

        outcome = await self.submitter.submit(decision_for(1))

        self.assertIs(outcome.kind, OutcomeKind.CONFIRMED)
        self.assertEqual([tx["nonce"] for tx in self.ledger.sent], [0, 0])
        self.assertEqual(outcome.tx_hash, self.ledger.sent[-1]["tx_hash"])
        self.assertEqual(self.ledger.state_changes, [(1, LoanState.OPEN)])

    async def test_mined_transaction_found_on_retry_is_not_resent(self) -> None:
        ledger = LateReceiptLedger()
        ledger.add_loan(1, "INV-2024-001", block_height=10)

        outcome = await self._submitter(ledger).submit(decision_for(1))

        self.assertIs(outcome.kind, OutcomeKind.CONFIRMED)
        self.assertEqual(outcome.attempts, 2)
        self.assertEqual(len(ledger.sent), 1)
        self.assertEqual(self.repository.get(1).tx_hash, ledger.sent[0]["tx_hash"])

    async def test_queue_assigns_nonces_in_block_order(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)
        self.ledger.add_loan(2, "FAKE-999", block_height=12)
        self.ledger.account_nonce = 7

        self.assertTrue(await self.submitter.enqueue(decision_for(1, block=10)))
        self.assertTrue(await self.submitter.enqueue(decision_for(2, is_valid=False, block=12)))
        self.submitter.start()
        await self.submitter.drain()
        await self.submitter.stop(timeout_sec=1)

        self.assertEqual([(tx["loan_id"], tx["nonce"]) for tx in self.ledger.sent], [(1, 7), (2, 8)])
        self.assertEqual(self.ledger.state_changes, [(1, LoanState.OPEN), (2, LoanState.REJECTED)])
        self.assertFalse(self.submitter.is_in_flight(1))

    async def test_duplicate_enqueue_is_dropped(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)

        self.assertTrue(await self.submitter.enqueue(decision_for(1)))
        self.assertFalse(await self.submitter.enqueue(decision_for(1)))

        self.assertEqual(self.submitter.queue_depth, 1)
        self.assertTrue(self.submitter.is_in_flight(1))

    async def test_restart_does_not_resubmit_confirmed_loan(self) -> None:
        self.ledger.add_loan(1, "INV-2024-001", block_height=10)
        await self.submitter.submit(decision_for(1))

        restarted = DecisionSubmitter(
            ledger=self.ledger,
            repository=self.repository,
            tracker=LoanStateTracker(),
            sleep=no_sleep,
        )
        queued = await restarted.enqueue(decision_for(1))

        self.assertFalse(queued)
        self.assertEqual(restarted.queue_depth, 0)
        self.assertIs(restarted.tracker.state_of(1), S.CONFIRMED)
        self.assertEqual(len(self.ledger.sent), 1)

    async def test_stop_without_start_is_noop(self) -> None:
        await self.submitter.stop(timeout_sec=0.1)
        self.assertEqual(self.submitter.queue_depth, 0)


if __name__ == "__main__":
    unittest.main()
