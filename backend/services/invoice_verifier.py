"""Invoice verification against the authoritative registry.

Policy: fail-closed. An invoice that cannot be verified is invalid, never
skipped. With `RegistryErrorPolicy.REJECT` (default) a registry failure also
yields `False`, which favours rejecting a legitimate loan over approving an
unverifiable one. `RegistryErrorPolicy.RETRY` raises instead, so the watcher
keeps its cursor and the range is verified again once the registry recovers.
"""

import logging

from models.enums import RegistryErrorPolicy
from models.exceptions import RegistryUnavailableError
from models.repositories import InvoiceRepository


logger = logging.getLogger(__name__)


class InvoiceVerifier:
    """Map an invoice number to a validity decision."""

    def __init__(
        self,
        registry: InvoiceRepository,
        error_policy: RegistryErrorPolicy = RegistryErrorPolicy.REJECT,
    ) -> None:
        self._registry = registry
        self._error_policy = RegistryErrorPolicy(error_policy)

    @property
    def error_policy(self) -> RegistryErrorPolicy:
        return self._error_policy

    def verify(self, invoice_number: str) -> bool:
        """Return True only if the registry holds this exact invoice number.

        Safe to call repeatedly with the same input; never writes anywhere.

        Raises:
            RegistryUnavailableError: Only under `RegistryErrorPolicy.RETRY`
                when the lookup itself fails.
        """
        if not isinstance(invoice_number, str) or not invoice_number.strip():
            logger.info("INVALID: malformed invoice number=%r", invoice_number)
            return False

        try:
            record = self._registry.get_by_number(invoice_number)
        except Exception as exc:
            if self._error_policy is RegistryErrorPolicy.RETRY:
                logger.warning("Registry lookup failed invoice_number=%s. Deferring decision.", invoice_number)
                raise RegistryUnavailableError(str(exc)) from exc
            logger.error("Registry lookup failed invoice_number=%s. Treating as invalid.", invoice_number)
            return False

        if record is None:
            logger.info("INVALID: invoice '%s' not found in registry.", invoice_number)
            return False

        logger.info(
            "VALID: invoice '%s' found seller_tax_id=%s total_amount=%s",
            invoice_number,
            record.seller_tax_id,
            record.total_amount,
        )
        return True
