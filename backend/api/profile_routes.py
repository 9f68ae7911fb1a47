"""Business profile key-value endpoints used by the dashboard."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from models.profiles import ProfileModel
from models.repositories import ProfileRepository


logger = logging.getLogger(__name__)


class ProfileUpsertRequest(BaseModel):
    """Request payload for profile upsert."""

    wallet_address: str = Field(..., min_length=1)
    business_name: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    npwp: Optional[str] = Field(default=None)


def build_profile_router(profiles: ProfileRepository) -> APIRouter:
    """Build `/profile` routes backed by the given repository."""
    router = APIRouter(prefix="/profile", tags=["profile"])

    @router.post("", summary="Create or replace a business profile")
    def upsert_profile(payload: ProfileUpsertRequest) -> Dict[str, str]:
        """Save the profile; an npwp owned by another wallet returns 409 and leaves that profile intact."""
        try:
            profiles.upsert(ProfileModel(**payload.model_dump()))
        except IntegrityError:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="npwp already registered.")
        except Exception:
            logger.exception("Failed to save profile wallet_address=%s", payload.wallet_address)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save profile.")
        return {"message": "Profile saved successfully"}

    @router.get("/{address}", summary="Fetch a business profile")
    def get_profile(address: str) -> Dict[str, Any]:
        """Return the profile, or an empty object when none exists."""
        try:
            model = profiles.get_by_address(address)
        except Exception:
            logger.exception("Failed to read profile wallet_address=%s", address)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to read profile.")
        return model.to_payload() if model is not None else {}

    return router
