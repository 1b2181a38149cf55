"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import AppConfig, ConfigurationError, check_required_settings, load_config
from .dependencies import include_routers
from .lifecycle import run_periodic_temp_cleanup
from .logging import configure_logging
from .storage.blob_store import BlobStore
from .usage.sources_base import UsageSource

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

HTTP_ERROR_CODES = {
    400: "invalid_request",
    404: "not_found",
    405: "method_not_allowed",
    413: "request_too_large",
}


@contextlib.asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: AppConfig = app.state.config
    shutdown_event = asyncio.Event()
    cleanup_task = asyncio.create_task(
        run_periodic_temp_cleanup(
            temp_store=app.state.temp_store,
            shutdown_event=shutdown_event,
            interval_seconds=config.temp_cleanup_interval_seconds,
        )
    )
    logger.info("app.started", extra={"environment": config.environment})
    try:
        yield
    finally:
        shutdown_event.set()
        await cleanup_task
        await app.state.usage_oracle.aclose()
        await app.state.blob_store.aclose()
        logger.info("app.stopped")


def install_error_handlers(app: FastAPI) -> None:
    """Reshape framework errors into the ``{error, message}`` body."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        body: dict[str, Any] = {
            "error": HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
            "message": exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        }
        return JSONResponse(
            status_code=exc.status_code,
            content=body,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("app.configuration_error", extra={"missing": list(exc.missing)})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "configuration_error", "message": str(exc)},
        )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def create_app(
    config: AppConfig | None = None,
    *,
    blob_store: BlobStore | None = None,
    usage_source: UsageSource | None = None,
) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    check_required_settings(cfg)
    app = FastAPI(title="FreeBucket", lifespan=_lifespan)
    install_error_handlers(app)
    include_routers(app, cfg, blob_store=blob_store, usage_source=usage_source)
    return app


def __getattr__(name: str) -> FastAPI:
    # ``app`` is built on first access so importing the factory needs no environment.
    if name == "app":
        application = create_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
