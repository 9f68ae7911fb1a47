"""Business profile model served by the profile endpoints."""

from typing import Optional

from pydantic import Field

from .base import OracleBaseModel


class ProfileModel(OracleBaseModel):
    """Borrower business profile keyed by wallet address."""

    wallet_address: str = Field(..., min_length=1)
    business_name: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    npwp: Optional[str] = Field(default=None, description="Indonesian taxpayer id.")
