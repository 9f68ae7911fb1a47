"""Print every loan stored by the lending contract."""

import logging
from pathlib import Path
import sys


BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from web3 import Web3

from common.contract_abi import FIRST_LOAN_ID
from core import LedgerClient, load_settings


logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger(__name__)


def main() -> None:
    """List loans `1..nextLoanId-1` with amounts and lifecycle state."""
    settings = load_settings()
    ledger = LedgerClient(
        rpc_url=settings.oracle_rpc_url or "",
        contract_address=settings.oracle_contract_address or "",
        abi_json=settings.oracle_contract_abi_json,
        request_timeout_sec=settings.oracle_request_timeout_sec,
    )
    logger.info("Reading loans from %s", ledger.contract_address)

    next_loan_id = ledger.get_next_loan_id()
    found = 0
    for loan_id in range(FIRST_LOAN_ID, next_loan_id):
        loan = ledger.get_loan(loan_id)
        if not loan.exists:
            continue
        found += 1
        logger.info(
            "loan_id=%s borrower=%s requested=%s funded=%s invoice=%s state=%s",
            loan_id,
            loan.borrower,
            Web3.from_wei(loan.amount_requested, "ether"),
            Web3.from_wei(loan.amount_funded, "ether"),
            loan.invoice_number,
            loan.state.name,
        )
    logger.info("Total loans found: %d", found)


if __name__ == "__main__":
    main()
