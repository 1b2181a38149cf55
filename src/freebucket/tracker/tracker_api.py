"""HTTP routes of the usage counter service."""

from __future__ import annotations

import hmac
from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .. import __version__
from .tracker_repository import UsageCounterRepository
from .tracker_schemas import IncrementRequestSchema

router = APIRouter(tags=["tracker"])
logger = structlog.get_logger(__name__)

AVAILABLE_ENDPOINTS = ["/health", "/usage", "/increment", "/reset"]
INVALID_OPERATION = "Invalid operation. Must be 'classA' or 'classB'"


def get_repository(request: Request) -> UsageCounterRepository:
    """Fetch counter repository from application state."""
    try:
        return request.app.state.counter_repository  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("UsageCounterRepository is not configured") from exc


def is_authorized(request: Request) -> bool:
    secret = getattr(request.app.state, "api_secret", None)
    if not secret:
        logger.warning("tracker.auth.secret_missing")
        return False
    provided = request.headers.get("authorization", "")
    return hmac.compare_digest(provided.encode(), f"Bearer {secret}".encode())


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})


def _clock(request: Request) -> datetime:
    return request.app.state.clock()


@router.get("/health")
def health(
    request: Request, repo: UsageCounterRepository = Depends(get_repository)
) -> dict[str, Any]:
    usage, is_new_month = repo.ensure_current_month()
    if is_new_month:
        logger.info("tracker.month.started", month=usage.month)
    return {
        "status": "ok",
        "timestamp": _clock(request).isoformat(),
        "month": usage.month,
        "isNewMonth": is_new_month,
        "version": __version__,
    }


@router.get("/usage")
def get_usage(repo: UsageCounterRepository = Depends(get_repository)) -> dict[str, Any]:
    return repo.get_usage().as_payload()


@router.post("/increment")
async def increment(
    request: Request, repo: UsageCounterRepository = Depends(get_repository)
) -> JSONResponse:
    """Count one operation; ``fileSize`` also grows storage for class A."""
    try:
        payload = await request.json()
        body = IncrementRequestSchema.model_validate(payload)
    except (ValueError, ValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": INVALID_OPERATION})

    if not is_authorized(request):
        logger.warning("tracker.increment.unauthorized")
        return _unauthorized()

    usage = repo.increment(body.operation, body.file_size)
    logger.info(
        "tracker.incremented",
        operation=body.operation.value,
        file_size=body.file_size,
        month=usage.month,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "usage": usage.as_payload(),
            "operation": body.operation.value,
            "fileSize": body.file_size,
            "month": usage.month,
        },
    )


@router.post("/reset")
def reset(request: Request, repo: UsageCounterRepository = Depends(get_repository)) -> JSONResponse:
    if not is_authorized(request):
        logger.warning("tracker.reset.unauthorized")
        return _unauthorized()
    usage = repo.reset()
    logger.info("tracker.reset", month=usage.month)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"success": True, "message": "Usage and storage reset", "month": usage.month},
    )
