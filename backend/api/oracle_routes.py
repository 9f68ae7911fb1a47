"""Read-only oracle status endpoints."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, status

from models.repositories import SubmissionRepository


logger = logging.getLogger(__name__)


def build_oracle_router(submissions: SubmissionRepository) -> APIRouter:
    """Build status routes; the running service is read from `app.state.oracle_service`."""
    router = APIRouter(prefix="/oracle", tags=["oracle"])

    @router.get("/status", summary="Oracle pipeline status")
    async def get_status(request: Request) -> Dict[str, Any]:
        """Return cursor, queue depth, loan state counts and ledger connectivity."""
        service = getattr(request.app.state, "oracle_service", None)
        if service is None:
            return {"running": False, "enabled": False}
        try:
            payload = await service.status()
            payload["enabled"] = True
            return payload
        except Exception:
            logger.exception("Failed to build oracle status.")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Status unavailable.")

    @router.get("/submissions/{loan_id}", summary="Submission record for a loan")
    def get_submission(loan_id: int) -> Dict[str, Any]:
        """Return the persisted submission record for `loan_id`."""
        try:
            record = submissions.get(loan_id)
        except Exception:
            logger.exception("Failed to read submission loan_id=%s", loan_id)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Storage error.")
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No submission for loan {0}".format(loan_id))
        return record.to_payload()

    return router
