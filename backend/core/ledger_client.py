"""Web3 ledger client for the InvoiceLending contract.

Every RPC failure leaves this module as one of two exceptions:
`LedgerRejectedError` when the contract refused the call, and
`LedgerUnavailableError` for everything the caller may retry.
"""

from contextlib import contextmanager
import json
import logging
from typing import Any, Dict, Iterator, List, Optional

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3Exception

from common.contract_abi import LOAN_CREATED_EVENT, LOANS_VIEW, NEXT_LOAN_ID_VIEW, VERIFY_FUNCTION
from models.exceptions import LedgerError, LedgerRejectedError, LedgerUnavailableError
from models.loans import LoanCreationEvent, LoanRecord


logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Map web3/requests failures onto the oracle's ledger error taxonomy."""
    try:
        yield
    except LedgerError:
        raise
    except ContractLogicError as exc:
        raise LedgerRejectedError("{0} rejected by contract: {1}".format(operation, exc)) from exc
    except (RequestException, TimeExhausted, Web3Exception, ValueError, OSError) as exc:
        raise LedgerUnavailableError("{0} failed: {1}".format(operation, exc)) from exc


class LedgerClient:
    """Read loan events/state and submit verification decisions."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        abi_json: str,
        private_key: Optional[str] = None,
        chain_id: int = 31337,
        gas_limit: int = 300000,
        gas_price_gwei: int = 2,
        request_timeout_sec: float = 10.0,
    ) -> None:
        """Initialize provider, contract and signing account.

        Args:
            rpc_url: JSON-RPC endpoint of the ledger node.
            contract_address: Deployed InvoiceLending address.
            abi_json: Contract ABI as JSON string.
            private_key: Oracle signing key; read-only client when omitted.
            chain_id: Chain id embedded in signed transactions.
            gas_limit: Fixed gas limit for `verifyLoan`.
            gas_price_gwei: Legacy gas price for `verifyLoan`.
            request_timeout_sec: HTTP timeout applied to every RPC call.
        """
        try:
            self._abi = json.loads(abi_json)
            self._w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": float(request_timeout_sec)}))
            self._contract = self._w3.eth.contract(
                address=Web3.to_checksum_address(contract_address),
                abi=self._abi,
            )
            self._private_key = private_key
            self._account = self._w3.eth.account.from_key(private_key) if private_key else None
            self._chain_id = int(chain_id)
            self._gas_limit = int(gas_limit)
            self._gas_price_gwei = int(gas_price_gwei)
            logger.info(
                "LedgerClient initialized contract=%s sender=%s",
                self._contract.address,
                self.sender_address,
            )
        except Exception:
            logger.exception("Failed to initialize LedgerClient.")
            raise

    @property
    def sender_address(self) -> Optional[str]:
        """Checksum address of the oracle signing account, if configured."""
        return self._account.address if self._account is not None else None

    @property
    def contract_address(self) -> str:
        return str(self._contract.address)

    def health(self) -> Dict[str, bool]:
        """Return provider connectivity status."""
        try:
            return {"ledger_connected": bool(self._w3.is_connected())}
        except Exception:
            logger.exception("Failed to check ledger provider health.")
            return {"ledger_connected": False}

    def get_block_number(self) -> int:
        """Return the ledger's current height."""
        with _translate_errors("eth_blockNumber"):
            return int(self._w3.eth.block_number)

    def get_loan_created_events(self, from_block: int, to_block: int) -> List[LoanCreationEvent]:
        """Fetch `LoanCreated` logs in `[from_block, to_block]`, oldest first.

        Raises:
            LedgerUnavailableError: If the log query fails; callers must not
                treat the range as scanned.
        """
        if from_block < 0 or to_block < from_block:
            raise ValueError("Invalid block range from_block={0} to_block={1}".format(from_block, to_block))

        with _translate_errors("eth_getLogs"):
            event_callable = getattr(self._contract.events, LOAN_CREATED_EVENT)()
            try:
                entries = list(event_callable.get_logs(from_block=from_block, to_block=to_block))
            except TypeError:
                # web3 v6 spelling
                entries = list(event_callable.get_logs(fromBlock=from_block, toBlock=to_block))

        events = [self._event_from_log(entry) for entry in entries]
        events.sort(key=lambda event: event.ordering_key)
        logger.debug("Fetched %d LoanCreated events from_block=%s to_block=%s", len(events), from_block, to_block)
        return events

    def get_loan(self, loan_id: int) -> LoanRecord:
        """Read `loans(loanId)` for the idempotency pre-check."""
        with _translate_errors("loans({0})".format(loan_id)):
            raw = getattr(self._contract.functions, LOANS_VIEW)(int(loan_id)).call()
        if not isinstance(raw, (list, tuple)) or len(raw) < 8:
            raise LedgerUnavailableError("Unexpected loans({0}) payload: {1!r}".format(loan_id, raw))
        return LoanRecord(
            loan_id=int(loan_id),
            borrower=str(raw[1]),
            amount_requested=int(raw[2]),
            amount_funded=int(raw[3]),
            ipfs_hash=str(raw[4]),
            invoice_number=str(raw[5]),
            interest_rate=int(raw[6]),
            state=int(raw[7]),
        )

    def get_next_loan_id(self) -> int:
        """Return `nextLoanId()`, one past the newest loan id."""
        with _translate_errors("nextLoanId"):
            return int(getattr(self._contract.functions, NEXT_LOAN_ID_VIEW)().call())

    def get_pending_nonce(self) -> int:
        """Return the signing account's next unused nonce, counting mempool transactions."""
        account = self._require_account()
        with _translate_errors("eth_getTransactionCount"):
            return int(self._w3.eth.get_transaction_count(account.address, "pending"))

    def send_verification(self, loan_id: int, is_valid: bool, nonce: int) -> str:
        """Simulate, sign and broadcast `verifyLoan(loanId, isValid)`.

        Returns:
            str: Transaction hash as 0x-prefixed hex.

        Raises:
            LedgerRejectedError: If the simulated call reverts.
            LedgerUnavailableError: On transport or node errors.
        """
        account = self._require_account()
        function = getattr(self._contract.functions, VERIFY_FUNCTION)(int(loan_id), bool(is_valid))
        with _translate_errors("verifyLoan({0}) simulation".format(loan_id)):
            function.call({"from": account.address})

        with _translate_errors("verifyLoan({0}) submission".format(loan_id)):
            tx = function.build_transaction(
                {
                    "chainId": self._chain_id,
                    "from": account.address,
                    "gas": self._gas_limit,
                    "gasPrice": self._w3.to_wei(self._gas_price_gwei, "gwei"),
                    "nonce": int(nonce),
                }
            )
            signed_tx = self._w3.eth.account.sign_transaction(tx, self._private_key)
            raw_tx = getattr(signed_tx, "raw_transaction", None)
            if raw_tx is None:
                raw_tx = getattr(signed_tx, "rawTransaction")
            tx_hash = self._hex_or_str(self._w3.eth.send_raw_transaction(raw_tx))
        logger.info(
            "verifyLoan sent loan_id=%s is_valid=%s nonce=%s tx_hash=%s",
            loan_id,
            is_valid,
            nonce,
            tx_hash,
        )
        return tx_hash

    def get_receipt_status(self, tx_hash: str) -> Optional[int]:
        """Return receipt status (1 success, 0 reverted), or None if not mined."""
        with _translate_errors("eth_getTransactionReceipt"):
            try:
                receipt = self._w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None
        if receipt is None:
            return None
        return int(receipt.get("status", 0))

    def wait_for_confirmation(self, tx_hash: str, timeout_sec: float) -> None:
        """Block until the transaction is mined.

        Raises:
            LedgerRejectedError: If the receipt reports a revert.
            LedgerUnavailableError: If no receipt arrives within `timeout_sec`.
        """
        with _translate_errors("wait for {0}".format(tx_hash)):
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=float(timeout_sec))
        if int(receipt.get("status", 0)) != 1:
            raise LedgerRejectedError("Transaction {0} reverted".format(tx_hash))
        logger.info("Transaction confirmed tx_hash=%s block=%s", tx_hash, receipt.get("blockNumber"))

    def _require_account(self) -> Any:
        if self._account is None:
            raise LedgerRejectedError("No oracle signing key configured.")
        return self._account

    def _event_from_log(self, item: Any) -> LoanCreationEvent:
        """Normalize one decoded log entry."""
        try:
            args = dict(item["args"])
            return LoanCreationEvent(
                loan_id=int(args["loanId"]),
                borrower=str(args["borrower"]),
                requested_amount=int(args.get("amount", 0)),
                invoice_number=str(args.get("invoiceNumber", "")),
                duration_seconds=int(args.get("duration", 0)),
                block_height=int(item["blockNumber"]),
                log_index=int(item.get("logIndex") or 0),
                tx_hash=self._hex_or_str(item.get("transactionHash")),
            )
        except Exception:
            logger.exception("Failed normalizing LoanCreated log entry=%s", item)
            raise

    def _hex_or_str(self, value: Any) -> str:
        """Return 0x-prefixed hex string for hash-like values."""
        if value is None:
            return ""
        if hasattr(value, "to_0x_hex"):
            return str(value.to_0x_hex())
        if hasattr(value, "hex"):
            text_value = str(value.hex())
            return text_value if text_value.startswith("0x") else "0x" + text_value
        return str(value)
