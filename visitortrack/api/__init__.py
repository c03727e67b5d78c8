# ==============================================================================
# HTTP API
# ==============================================================================
"""
FastAPI application factory.

Usage:
    uvicorn --factory visitortrack.api:create_app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from visitortrack.api.routes import router
from visitortrack.core.errors import ExportError, InvalidRangeError, StoreUnavailableError
from visitortrack.services import Services, build_services
from visitortrack.utils.config import get_settings

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None, run_sweeper: bool | None = None) -> FastAPI:
    """
    Build the API.

    Args:
        services: Prebuilt service graph. If None, one is built from settings
                  at startup and closed at shutdown.
        run_sweeper: Run the sweeper thread inside the API process. Defaults
                     to API_RUN_SWEEPER.
    """
    settings = services.settings if services else get_settings()
    if run_sweeper is None:
        run_sweeper = settings.api.run_sweeper
    retry_after = str(settings.api.retry_after_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or build_services(settings)
        if run_sweeper:
            app.state.services.sweeper.start()
        try:
            yield
        finally:
            app.state.services.sweeper.stop()
            if owned:
                app.state.services.close()

    app = FastAPI(title="Visitor Tracking", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    def unavailable(message: str) -> JSONResponse:
        return JSONResponse(
            {"success": False, "retryable": True, "error": message},
            status_code=503,
            headers={"Retry-After": retry_after},
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.warning("%s %s: store unavailable: %s", request.method, request.url.path, exc)
        return unavailable("Session store unavailable")

    @app.exception_handler(ExportError)
    async def export_failed(request: Request, exc: ExportError):
        logger.warning("Export failed before streaming: %s", exc)
        return unavailable("Export failed")

    @app.exception_handler(InvalidRangeError)
    async def invalid_range(request: Request, exc: InvalidRangeError):
        return JSONResponse({"success": False, "error": str(exc)}, status_code=400)

    app.include_router(router, prefix=settings.api.prefix)
    return app


__all__ = ["create_app"]
