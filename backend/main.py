"""Application entrypoint for the ChainVoice oracle FastAPI backend."""

import sys
from pathlib import Path
from typing import Optional

# ---------------------------------------------------------------------------
# Ensure backend packages are importable when run as a script
# ---------------------------------------------------------------------------
_BACKEND_DIR = Path(__file__).resolve().parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from api.oracle_routes import build_oracle_router
from api.profile_routes import build_profile_router
from api.routes import build_router
from core import AppSettings, DatabaseManager, get_logger, load_settings, setup_logging
from repositories import SqlProfileRepository, SqlSubmissionRepository
from services import OracleService


setup_logging()
logger = get_logger(__name__)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and configure a FastAPI application instance."""
    settings = settings or load_settings()
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    database = DatabaseManager(settings.database_url, timeout_sec=settings.database_timeout_sec)
    database.create_schema()
    app.state.database = database

    app.include_router(build_router(settings, database))
    app.include_router(build_profile_router(SqlProfileRepository(database)))
    app.include_router(build_oracle_router(SqlSubmissionRepository(database)))

    # ── Background services ──────────────────────────────────────────────
    app.state.oracle_service = None
    if not settings.oracle_enabled:
        logger.info("Oracle disabled by oracle.enabled=false")
    elif not OracleService.is_config_complete(settings):
        logger.warning("Oracle enabled but configuration is incomplete (rpc_url, contract_address, private_key).")
    else:
        app.state.oracle_service = OracleService.from_settings(settings, database)

    @app.on_event("startup")
    async def _startup_background_services() -> None:
        """Start background services on application startup."""
        if app.state.oracle_service is None:
            return
        try:
            await app.state.oracle_service.start()
        except Exception:
            logger.exception("Failed to start oracle service during startup.")

    @app.on_event("shutdown")
    async def _shutdown_background_services() -> None:
        """Stop background services, letting in-flight submissions finish."""
        try:
            if app.state.oracle_service is not None:
                await app.state.oracle_service.stop()
        except Exception:
            logger.exception("Failed to stop oracle service during shutdown.")
        finally:
            app.state.database.dispose()

    logger.info("Application initialized: %s", settings.app_name)
    return app


app = create_app()


def run() -> None:
    """Start the ASGI server."""
    settings = load_settings()
    try:
        uvicorn.run("main:app", host=settings.host, port=settings.port, reload=settings.debug)
    except Exception:
        logger.exception("Failed to start uvicorn server.")
        raise


if __name__ == "__main__":
    run()
