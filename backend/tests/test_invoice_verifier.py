"""Unit tests for the fail-closed invoice verifier."""

from pathlib import Path
import sys
import unittest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.enums import RegistryErrorPolicy
from models.exceptions import RegistryUnavailableError
from models.invoices import InvoiceRecord
from repositories import SqlInvoiceRepository
from services.invoice_verifier import InvoiceVerifier
from oracle_fakes import make_database


class BrokenRegistry:
    """Registry whose every lookup fails."""

    def __init__(self) -> None:
        self.calls = 0

    def get_by_number(self, invoice_number):
        self.calls += 1
        raise RuntimeError("database is locked")

    def upsert(self, record):
        raise RuntimeError("database is locked")


class InvoiceVerifierTests(unittest.TestCase):
    """Registry membership decides validity."""

    def setUp(self) -> None:
        self.database = make_database()
        self.registry = SqlInvoiceRepository(self.database)
        self.registry.upsert(InvoiceRecord(invoice_number="INV-2024-002", seller_tax_id="99", total_amount=10))
        self.verifier = InvoiceVerifier(self.registry)

    def test_present_invoices_are_valid(self) -> None:
        self.assertTrue(self.verifier.verify("INV-2024-001"))
        self.assertTrue(self.verifier.verify("INV-2024-002"))

    def test_absent_invoice_is_invalid(self) -> None:
        self.assertFalse(self.verifier.verify("FAKE-999"))

    def test_match_is_exact(self) -> None:
        self.assertFalse(self.verifier.verify("inv-2024-001"))
        self.assertFalse(self.verifier.verify("INV-2024-0011"))
        self.assertFalse(self.verifier.verify(" INV-2024-001 "))

    def test_result_independent_of_order_and_repetition(self) -> None:
        numbers = ["FAKE-999", "INV-2024-001", "INV-2024-002", "FAKE-999", "INV-2024-001"]
        first = [self.verifier.verify(number) for number in numbers]
        second = [self.verifier.verify(number) for number in reversed(numbers)]
        self.assertEqual(first, [False, True, True, False, True])
        self.assertEqual(second, list(reversed(first)))

    def test_verify_does_not_modify_registry(self) -> None:
        self.verifier.verify("FAKE-999")
        self.assertIsNone(self.registry.get_by_number("FAKE-999"))

    def test_malformed_invoice_numbers_are_invalid(self) -> None:
        self.assertFalse(self.verifier.verify(""))
        self.assertFalse(self.verifier.verify("   "))
        self.assertFalse(self.verifier.verify(None))  # type: ignore[arg-type]

    def test_registry_error_fails_closed_by_default(self) -> None:
        verifier = InvoiceVerifier(BrokenRegistry())
        self.assertEqual(verifier.error_policy, RegistryErrorPolicy.REJECT)
        self.assertFalse(verifier.verify("INV-2024-001"))

    def test_registry_error_raises_under_retry_policy(self) -> None:
        verifier = InvoiceVerifier(BrokenRegistry(), error_policy=RegistryErrorPolicy.RETRY)
        with self.assertRaises(RegistryUnavailableError):
            verifier.verify("INV-2024-001")

    def test_policy_accepts_config_strings(self) -> None:
        verifier = InvoiceVerifier(self.registry, error_policy="retry")  # type: ignore[arg-type]
        self.assertIs(verifier.error_policy, RegistryErrorPolicy.RETRY)


if __name__ == "__main__":
    unittest.main()
