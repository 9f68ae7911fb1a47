"""Service-level HTTP routes: banner, health probe and settings snapshot."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, Response, status

from core.config import AppSettings
from core.database_manager import DatabaseManager


def build_router(settings: AppSettings, database: Optional[DatabaseManager] = None) -> APIRouter:
    """Build the root routes; `/health` also probes the registry database when given."""
    router = APIRouter()

    @router.get("/", summary="Root endpoint")
    def read_root() -> Dict[str, str]:
        return {"message": "{0} is running".format(settings.app_name)}

    @router.get("/health", summary="Health check")
    def health_check(request: Request, response: Response) -> Dict[str, Any]:
        """Return 503 when the registry database cannot be queried."""
        database_ok = database.health() if database is not None else True
        if not database_ok:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        service = getattr(request.app.state, "oracle_service", None)
        return {
            "status": "ok" if database_ok else "degraded",
            "database": database_ok,
            "oracle_running": bool(service is not None and service.is_running),
        }

    @router.get("/settings", summary="Settings snapshot")
    def get_settings_snapshot() -> Dict[str, Any]:
        """Expose non-sensitive settings; the signing key is never returned."""
        return {
            "app_name": settings.app_name,
            "oracle_enabled": settings.oracle_enabled,
            "contract_address": settings.oracle_contract_address,
            "chain_id": settings.oracle_chain_id,
            "poll_interval_sec": settings.oracle_poll_interval_sec,
            "max_block_range": settings.oracle_max_block_range,
            "registry_error_policy": settings.oracle_registry_error_policy,
        }

    return router
