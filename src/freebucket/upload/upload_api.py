"""HTTP routes for uploads."""

from __future__ import annotations

import logging
import traceback
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import FormData
from starlette.formparsers import MultiPartParser

from ..config import AppConfig
from ..usage.usage_service import usage_summary
from .client_identity import client_identity
from .upload_errors import RequestTooLargeError, UploadError
from .upload_models import UploadRequest, UploadResult
from .upload_schemas import ProcessingMetaSchema, UploadErrorSchema, UploadSuccessSchema
from .upload_service import UploadOrchestrator

router = APIRouter(tags=["upload"])
logger = logging.getLogger(__name__)


def get_upload_orchestrator(request: Request) -> UploadOrchestrator:
    """Fetch upload orchestrator from application state."""
    try:
        return request.app.state.upload_orchestrator  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("UploadOrchestrator is not configured") from exc


def get_app_config(request: Request) -> AppConfig:
    try:
        return request.app.state.config  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("AppConfig is not configured") from exc


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


async def limited_stream(
    chunks: AsyncIterator[bytes], limit_bytes: int
) -> AsyncIterator[bytes]:
    """Yield body chunks until more than ``limit_bytes`` have arrived."""
    received = 0
    async for chunk in chunks:
        received += len(chunk)
        if received > limit_bytes:
            raise RequestTooLargeError(f"Request too large (limit {limit_bytes} bytes)")
        yield chunk


def build_upload_request(request: Request, config: AppConfig) -> UploadRequest:
    limits = config.upload_limits

    async def read_form() -> FormData:
        content_type = request.headers.get("content-type", "")
        if not content_type.lower().startswith("multipart/form-data"):
            return FormData()
        # Counted while streaming; chunked bodies carry no Content-Length.
        parser = MultiPartParser(
            request.headers,
            limited_stream(request.stream(), limits.max_request_size_bytes),
            max_files=1,
            max_fields=limits.max_form_fields,
        )
        return await parser.parse()

    return UploadRequest(
        identity=client_identity(
            request, trust_proxy_headers=config.rate_limit.trust_proxy_headers
        ),
        origin=request.headers.get("origin"),
        content_length=_declared_length(request),
        read_form=read_form,
    )


def success_payload(result: UploadResult, config: AppConfig) -> dict[str, Any]:
    meta = None
    if not config.is_production:
        meta = ProcessingMetaSchema(
            key=result.stored.key,
            size_bytes=result.stored.size_bytes,
            content_type=result.stored.content_type,
            processing_time_ms=result.processing_ms,
            usage_source=result.usage_source,
            usage_estimated=result.usage.estimated,
            accounted=result.accounted,
            environment=config.environment,
        )
    body = UploadSuccessSchema(
        url=result.stored.url,
        usage=usage_summary(result.usage),
        processing_meta=meta,
    )
    return body.model_dump(mode="json", by_alias=True, exclude_none=True)


def error_response(exc: UploadError, config: AppConfig) -> JSONResponse:
    body = exc.payload()
    if exc.status_code >= 500 and config.is_production:
        body["message"] = "Upload failed"
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers())


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    code: {"model": UploadErrorSchema} for code in (400, 403, 405, 413, 429, 500)
}


@router.post("/upload", response_model=None, responses=ERROR_RESPONSES)
async def upload_file(
    request: Request,
    orchestrator: UploadOrchestrator = Depends(get_upload_orchestrator),
    config: AppConfig = Depends(get_app_config),
) -> JSONResponse:
    """Validate an image, check the quota and store it in the bucket."""
    upload_request = build_upload_request(request, config)
    try:
        result = await orchestrator.handle(upload_request)
    except UploadError as exc:
        return error_response(exc, config)
    except Exception as exc:
        logger.exception(
            "upload.unexpected_error", extra={"identity": upload_request.identity}
        )
        body: dict[str, Any] = {"error": "upload_failed", "message": "Upload failed"}
        if not config.is_production:
            body["message"] = str(exc)
        if config.is_development:
            body["stack"] = traceback.format_exc()
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)

    return JSONResponse(status_code=status.HTTP_200_OK, content=success_payload(result, config))
