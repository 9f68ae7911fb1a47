"""Invoice registry record model."""

from pydantic import Field

from .base import FrozenOracleModel


class InvoiceRecord(FrozenOracleModel):
    """Authoritative invoice entry owned by the external registry."""

    invoice_number: str = Field(..., min_length=1)
    seller_tax_id: str = Field(default="")
    total_amount: float = Field(default=0, ge=0)
