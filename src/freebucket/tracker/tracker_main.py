"""FastAPI entry point of the usage counter service."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..logging import configure_logging
from ..usage.billing_period import utcnow
from .tracker_api import AVAILABLE_ENDPOINTS, router
from .tracker_db import build_session_factory, init_db
from .tracker_repository import UsageCounterRepository

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./freebucket-tracker.db"


def create_tracker_app(
    database_url: str | None = None,
    api_secret: str | None = None,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """Build the counter service; arguments fall back to ``TRACKER_*`` env vars."""
    configure_logging()
    url = database_url or os.getenv("TRACKER_DATABASE_URL", DEFAULT_DATABASE_URL)
    engine, session_factory = build_session_factory(url)
    init_db(engine)

    app = FastAPI(title="FreeBucket usage tracker")
    app.state.clock = clock
    app.state.api_secret = api_secret if api_secret is not None else os.getenv("TRACKER_API_SECRET")
    app.state.counter_repository = UsageCounterRepository(session_factory, clock=clock)

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown paths and wrong methods both advertise the supported routes.
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "Not Found", "availableEndpoints": AVAILABLE_ENDPOINTS},
            )
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("tracker.internal_error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal Server Error",
                "message": str(exc),
                "timestamp": clock().isoformat(),
            },
        )

    app.include_router(router)
    if not app.state.api_secret:
        logger.warning("tracker.api_secret_missing")
    logger.info("tracker.started", extra={"database_url": engine.url.render_as_string(hide_password=True)})
    return app


def __getattr__(name: str) -> FastAPI:
    if name == "app":
        application = create_tracker_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
