"""Common reusable utility exports."""

from .contract_abi import (
    DEFAULT_LENDING_ABI,
    FIRST_LOAN_ID,
    LOAN_CREATED_EVENT,
    LOANS_VIEW,
    NEXT_LOAN_ID_VIEW,
    VERIFY_FUNCTION,
)

__all__ = [
    "DEFAULT_LENDING_ABI",
    "FIRST_LOAN_ID",
    "LOAN_CREATED_EVENT",
    "LOANS_VIEW",
    "NEXT_LOAN_ID_VIEW",
    "VERIFY_FUNCTION",
]
