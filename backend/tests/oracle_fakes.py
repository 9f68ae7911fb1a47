"""In-memory test doubles for the ledger and registry."""

from pathlib import Path
import sys
from typing import Dict, List, Optional, Tuple


BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from core.database_manager import DatabaseManager
from models.enums import LoanState
from models.exceptions import LedgerRejectedError, LedgerUnavailableError
from models.invoices import InvoiceRecord
from models.loans import LoanCreationEvent, LoanRecord
from repositories import SqlInvoiceRepository


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
BORROWER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def make_database() -> DatabaseManager:
    """Fresh in-memory database with schema and the seeded registry invoice."""
    database = DatabaseManager("sqlite://")
    database.create_schema()
    SqlInvoiceRepository(database).upsert(
        InvoiceRecord(invoice_number="INV-2024-001", seller_tax_id="1234567890", total_amount=50000000)
    )
    return database


async def no_sleep(delay: float) -> None:
    """Backoff stub that returns immediately."""
    return None


class RecordingSleep:
    """Backoff stub recording requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeLedgerClient:
    """Ledger double with the same surface as `core.ledger_client.LedgerClient`.

    `verifyLoan` moves a PENDING loan to OPEN (valid) or REJECTED (invalid)
    when the transaction is mined, i.e. on `wait_for_confirmation`.
    """

    def __init__(self) -> None:
        self.block_number = 0
        self.events: List[LoanCreationEvent] = []
        self.loans: Dict[int, LoanRecord] = {}
        self.unavailable = False
        self.fail_sends = 0
        self.fail_confirmations = 0
        self.fail_event_queries = 0
        self.account_nonce = 0
        self.sent: List[Dict] = []
        self.receipts: Dict[str, int] = {}
        self.state_changes: List[Tuple[int, LoanState]] = []
        self.event_queries: List[Tuple[int, int]] = []
        self._pending: Dict[str, Dict] = {}

    # -- test helpers ------------------------------------------------------

    def add_loan(self, loan_id: int, invoice_number: str, block_height: int, log_index: int = 0) -> LoanCreationEvent:
        """Create a loan and its `LoanCreated` event, advancing the head if needed."""
        event = LoanCreationEvent(
            loan_id=loan_id,
            borrower=BORROWER,
            requested_amount=100 * 10**18,
            invoice_number=invoice_number,
            duration_seconds=30 * 24 * 60 * 60,
            block_height=block_height,
            log_index=log_index,
            tx_hash="0x{0:064x}".format(1000 + loan_id),
        )
        self.events.append(event)
        self.loans[loan_id] = LoanRecord(
            loan_id=loan_id,
            borrower=BORROWER,
            amount_requested=event.requested_amount,
            invoice_number=invoice_number,
            state=LoanState.PENDING,
        )
        self.block_number = max(self.block_number, block_height)
        return event

    def set_state(self, loan_id: int, state: LoanState) -> None:
        self.loans[loan_id] = self.loans[loan_id].model_copy(update={"state": state})

    def _check(self) -> None:
        if self.unavailable:
            raise LedgerUnavailableError("connection refused")

    # -- LedgerClient surface ----------------------------------------------

    @property
    def sender_address(self) -> str:
        return "0x90F79bf6EB2c4f870365E785982E1f101E93b906"

    def health(self) -> Dict[str, bool]:
        return {"ledger_connected": not self.unavailable}

    def get_block_number(self) -> int:
        self._check()
        return self.block_number

    def get_loan_created_events(self, from_block: int, to_block: int) -> List[LoanCreationEvent]:
        self._check()
        if self.fail_event_queries > 0:
            self.fail_event_queries -= 1
            raise LedgerUnavailableError("eth_getLogs timed out")
        self.event_queries.append((from_block, to_block))
        found = [event for event in self.events if from_block <= event.block_height <= to_block]
        # Node order is not guaranteed; the watcher sorts.
        return list(reversed(found))

    def get_loan(self, loan_id: int) -> LoanRecord:
        self._check()
        return self.loans.get(loan_id) or LoanRecord(loan_id=loan_id, borrower=ZERO_ADDRESS)

    def get_next_loan_id(self) -> int:
        self._check()
        return (max(self.loans) + 1) if self.loans else 1

    def get_pending_nonce(self) -> int:
        self._check()
        return self.account_nonce

    def send_verification(self, loan_id: int, is_valid: bool, nonce: int) -> str:
        self._check()
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise LedgerUnavailableError("read timed out")
        loan = self.get_loan(loan_id)
        if loan.state is not LoanState.PENDING:
            raise LedgerRejectedError("execution reverted: loan not pending")

        replaced = [tx for tx, data in self._pending.items() if data["nonce"] == nonce]
        if nonce != self.account_nonce and not replaced:
            raise LedgerUnavailableError("nonce too low")
        for tx in replaced:
            del self._pending[tx]
        if not replaced:
            self.account_nonce += 1

        tx_hash = "0x{0:064x}".format(len(self.sent) + 1)
        data = {"loan_id": loan_id, "is_valid": is_valid, "nonce": nonce, "tx_hash": tx_hash}
        self.sent.append(data)
        self._pending[tx_hash] = data
        return tx_hash

    def get_receipt_status(self, tx_hash: str) -> Optional[int]:
        self._check()
        return self.receipts.get(tx_hash)

    def wait_for_confirmation(self, tx_hash: str, timeout_sec: float) -> None:
        self._check()
        if self.fail_confirmations > 0:
            self.fail_confirmations -= 1
            raise LedgerUnavailableError("receipt not available after {0}s".format(timeout_sec))
        data = self._pending.pop(tx_hash, None)
        if data is None:
            raise LedgerUnavailableError("unknown transaction {0}".format(tx_hash))
        loan = self.loans[data["loan_id"]]
        if loan.state is not LoanState.PENDING:
            self.receipts[tx_hash] = 0
            raise LedgerRejectedError("Transaction {0} reverted".format(tx_hash))
        new_state = LoanState.OPEN if data["is_valid"] else LoanState.REJECTED
        self.set_state(data["loan_id"], new_state)
        self.state_changes.append((data["loan_id"], new_state))
        self.receipts[tx_hash] = 1
