"""Minimal ABI of the InvoiceLending contract consumed by the oracle.

Solidity reference:
    event LoanCreated(uint256 loanId, address borrower, uint256 amount,
                      string invoiceNumber, uint256 duration);
    function verifyLoan(uint256 _loanId, bool _isValid) external;
    function loans(uint256) view returns (uint256 id, address borrower,
        uint256 amountRequested, uint256 amountFunded, string ipfsHash,
        string invoiceNumber, uint256 interestRate, uint8 state);
    function nextLoanId() view returns (uint256);
"""

from __future__ import annotations

from typing import Any, Dict, List

# ---------------------------------------------------------------------------
# Names used by the oracle
# ---------------------------------------------------------------------------
LOAN_CREATED_EVENT: str = "LoanCreated"
VERIFY_FUNCTION: str = "verifyLoan"
LOANS_VIEW: str = "loans"
NEXT_LOAN_ID_VIEW: str = "nextLoanId"

# Loan ids start at 1; `nextLoanId()` is one past the newest loan.
FIRST_LOAN_ID: int = 1


def _param(name: str, type_: str, indexed: bool = False) -> Dict[str, Any]:
    return {"indexed": indexed, "internalType": type_, "name": name, "type": type_}


def _output(name: str, type_: str) -> Dict[str, Any]:
    return {"internalType": type_, "name": name, "type": type_}


DEFAULT_LENDING_ABI: List[Dict[str, Any]] = [
    {
        "anonymous": False,
        "inputs": [
            _param("loanId", "uint256"),
            _param("borrower", "address"),
            _param("amount", "uint256"),
            _param("invoiceNumber", "string"),
            _param("duration", "uint256"),
        ],
        "name": LOAN_CREATED_EVENT,
        "type": "event",
    },
    {
        "inputs": [_output("_loanId", "uint256"), _output("_isValid", "bool")],
        "name": VERIFY_FUNCTION,
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [_output("", "uint256")],
        "name": LOANS_VIEW,
        "outputs": [
            _output("id", "uint256"),
            _output("borrower", "address"),
            _output("amountRequested", "uint256"),
            _output("amountFunded", "uint256"),
            _output("ipfsHash", "string"),
            _output("invoiceNumber", "string"),
            _output("interestRate", "uint256"),
            _output("state", "uint8"),
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": NEXT_LOAN_ID_VIEW,
        "outputs": [_output("", "uint256")],
        "stateMutability": "view",
        "type": "function",
    },
]
