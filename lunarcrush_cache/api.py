"""
FastAPI application exposing the request-triggered cache refresh.

POST /api/cron/update-crypto-data runs one refresh synchronously:
200 for complete or partial runs, 500 for fatal errors, 405 for other methods.
"""
from contextlib import asynccontextmanager
from typing import Callable

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from lunarcrush_cache.config import Settings, get_settings
from lunarcrush_cache.database import Database
from lunarcrush_cache.models import RefreshState
from lunarcrush_cache.refresh.orchestrator import RefreshOrchestrator
from lunarcrush_cache.service import build_orchestrator
from lunarcrush_cache.utils.logging import setup_logging

logger = structlog.get_logger()

CRON_PATH = "/api/cron/update-crypto-data"

router = APIRouter()


def get_orchestrator(request: Request) -> RefreshOrchestrator:
    """Orchestrator created at startup."""
    return request.app.state.orchestrator


@router.post(CRON_PATH, tags=["cron"])
async def update_crypto_data(orchestrator: RefreshOrchestrator = Depends(get_orchestrator)):
    """
    Refresh every cache group once.

    Response (200):
    {
      "success": true,
      "status": "complete" | "partial",
      "successfulEndpoints": 9,
      "failedEndpoints": 5,
      "errors": ["Market: API request failed: 503 for /category/defi/v1"]
    }
    """
    result = await orchestrator.execute()
    status_code = 500 if result.status == RefreshState.ERROR else 200
    return JSONResponse(status_code=status_code, content=result.to_response())


@router.api_route(
    CRON_PATH,
    methods=["GET", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def update_crypto_data_wrong_method():
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})


@router.get("/health", tags=["system"])
async def health():
    return {"status": "ok"}


def create_app(settings_loader: Callable[[], Settings] = get_settings) -> FastAPI:
    """
    Build the application.

    Settings are loaded during startup; a missing required variable aborts
    startup with ``ConfigurationError`` before any network call.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = settings_loader()
        setup_logging(settings.log_level, settings.log_format)
        logger.info("Starting LunarCrush cache API")

        db = Database(settings)
        await db.connect()
        app.state.orchestrator = build_orchestrator(settings, db)

        yield

        await db.disconnect()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="LunarCrush Cache",
        description="Request-triggered refresh of the crypto_cache table",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()
