"""HTTP routes for usage reporting."""

from __future__ import annotations

import logging
import traceback
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from .usage_service import UsageService

router = APIRouter(tags=["usage"])
logger = logging.getLogger(__name__)


def get_usage_service(request: Request) -> UsageService:
    """Fetch usage service from application state."""
    try:
        return request.app.state.usage_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("UsageService is not configured") from exc


def failure_response(request: Request, exc: Exception, error: str, message: str) -> JSONResponse:
    body: dict[str, Any] = {"error": error, "message": message}
    config = getattr(request.app.state, "config", None)
    if config is not None and not config.is_production:
        body["message"] = str(exc)
    if config is not None and config.is_development:
        body["stack"] = traceback.format_exc()
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


@router.get("/usage")
async def get_usage(
    request: Request,
    debug: str | None = None,
    service: UsageService = Depends(get_usage_service),
) -> JSONResponse:
    """Return month-to-date usage against the free-tier limits."""
    if debug == "auth":
        try:
            auth_test = await service.verify_credentials()
        except Exception as exc:
            logger.exception("usage.auth_test.failed")
            return failure_response(request, exc, "auth_test_failed", "Auth test failed")
        return JSONResponse(status_code=status.HTTP_200_OK, content={"authTest": auth_test})

    try:
        response = await service.report()
    except Exception as exc:
        logger.exception("usage.report.failed")
        return failure_response(request, exc, "usage_failed", "Failed to fetch usage")

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=response.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
