"""Upload orchestration: checks, quota gate, blob store write and accounting."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import quote

from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import ClientDisconnect

from ..storage.blob_store import BlobStore
from ..storage.public_links import build_public_url
from ..storage.storage_errors import BlobStoreError
from ..usage.billing_period import utcnow
from ..usage.quota_gate import QuotaGate
from ..usage.usage_models import UsageSnapshot
from ..usage.usage_oracle import UsageOracle
from ..usage.usage_service import usage_breakdown
from .client_identity import is_allowed_origin
from .rate_limiter import SlidingWindowRateLimiter
from .temp_store import TempUploadStore
from .upload_errors import (
    MalformedUploadError,
    OriginForbiddenError,
    QuotaExceededError,
    RateLimitError,
    RequestTooLargeError,
    StorageError,
    UploadCancelledError,
    UploadError,
    ValidationError,
)
from .upload_models import (
    RejectionKind,
    StoredObject,
    UploadContext,
    UploadRequest,
    UploadResult,
    UploadStage,
)
from .validation import ContentValidator

logger = logging.getLogger(__name__)

FILE_FIELD = "file"


@dataclass(slots=True)
class UploadOrchestrator:
    """Run one upload through the pipeline, one stage at a time.

    Every check either advances the context or raises an :class:`UploadError`;
    the temporary buffer and the parsed form are released on every exit path.
    Quota is enforced before the write and usage is counted only after it.
    """

    allowed_origins: Sequence[str]
    rate_limiter: SlidingWindowRateLimiter
    validator: ContentValidator
    temp_store: TempUploadStore
    oracle: UsageOracle
    gate: QuotaGate
    blob_store: BlobStore
    public_domain: str
    public_path_prefix: str = "free-bucket"
    max_request_size_bytes: int = 12 * 1024 * 1024
    max_file_size_bytes: int = 10 * 1024 * 1024
    max_form_fields: int = 5
    max_field_size_bytes: int = 2 * 1024
    original_name_max_length: int = 100
    key_factory: Callable[[], str] = field(default_factory=lambda: lambda: uuid.uuid4().hex)
    clock: Callable[[], datetime] = utcnow
    log: logging.Logger = field(default_factory=lambda: logger)

    async def handle(self, request: UploadRequest) -> UploadResult:
        started = time.perf_counter()
        ctx = UploadContext(request=request, started_at=self.clock())
        form: FormData | None = None
        try:
            self._check_origin(ctx)
            self._check_rate(ctx)
            self._check_declared_size(ctx)
            form = await self._parse(ctx)
            self._check_type(ctx)
            data = self._validate_content(ctx)
            await self._check_quota(ctx)
            await self._store(ctx, data)
            await self._account(ctx)
            usage = await self._usage_after_upload(ctx)
        except UploadError as exc:
            terminal = UploadStage.FAILED if exc.status_code >= 500 else UploadStage.REJECTED
            self.log.warning(
                "upload.rejected" if terminal is UploadStage.REJECTED else "upload.failed",
                extra={
                    "identity": request.identity,
                    "stage": ctx.stage.value,
                    "error_code": exc.error_code,
                    "status_code": exc.status_code,
                    "reason": exc.message,
                },
            )
            ctx.advance(terminal)
            raise
        finally:
            if ctx.temp is not None:
                ctx.temp.release()
            if form is not None:
                await form.close()

        processing_ms = round((time.perf_counter() - started) * 1000, 2)
        self._advance(ctx, UploadStage.RESPONDED)
        assert ctx.stored is not None
        self.log.info(
            "upload.completed",
            extra={
                "identity": request.identity,
                "key": ctx.stored.key,
                "size_bytes": ctx.stored.size_bytes,
                "accounted": ctx.accounted,
                "processing_ms": processing_ms,
            },
        )
        return UploadResult(
            stored=ctx.stored,
            usage=usage,
            accounted=ctx.accounted,
            processing_ms=processing_ms,
            usage_source=self.oracle.source_name,
        )

    def _advance(self, ctx: UploadContext, stage: UploadStage) -> None:
        ctx.advance(stage)
        self.log.debug(
            "upload.stage",
            extra={"identity": ctx.request.identity, "stage": stage.value},
        )

    def _check_origin(self, ctx: UploadContext) -> None:
        if not is_allowed_origin(ctx.request.origin, self.allowed_origins):
            raise OriginForbiddenError("Origin not allowed")
        self._advance(ctx, UploadStage.ORIGIN_CHECKED)

    def _check_rate(self, ctx: UploadContext) -> None:
        if not self.rate_limiter.try_admit(ctx.request.identity):
            raise RateLimitError(
                "Too many upload attempts. Please try again later.",
                retry_after_seconds=self.rate_limiter.retry_after_seconds,
            )
        self._advance(ctx, UploadStage.RATE_CHECKED)

    def _check_declared_size(self, ctx: UploadContext) -> None:
        declared = ctx.request.content_length
        if declared is not None and declared > self.max_request_size_bytes:
            raise RequestTooLargeError(
                f"Request too large (limit {self.max_request_size_bytes} bytes)"
            )
        self._advance(ctx, UploadStage.SIZE_CHECKED)

    async def _parse(self, ctx: UploadContext) -> FormData:
        try:
            form = await ctx.request.read_form()
        except ClientDisconnect as exc:
            raise UploadCancelledError("Upload was interrupted before completion") from exc
        except MultiPartException as exc:
            raise MalformedUploadError(f"Invalid upload: {exc.message}") from exc
        except StarletteHTTPException as exc:
            raise MalformedUploadError(f"Invalid upload: {exc.detail}") from exc

        try:
            items = form.multi_items()
            text_fields = [name for name, value in items if isinstance(value, str)]
            if len(text_fields) > self.max_form_fields:
                raise MalformedUploadError(
                    f"Too many form fields (limit {self.max_form_fields})"
                )
            for name, value in items:
                if isinstance(value, str) and len(value.encode("utf-8")) > self.max_field_size_bytes:
                    raise MalformedUploadError(
                        f"Form field '{name}' exceeds {self.max_field_size_bytes} bytes"
                    )

            upload = form.get(FILE_FIELD)
            if not isinstance(upload, UploadFile):
                raise MalformedUploadError("No file uploaded")

            try:
                ctx.temp = await self.temp_store.persist_upload(
                    upload, max_bytes=self.max_file_size_bytes
                )
            except ClientDisconnect as exc:
                raise UploadCancelledError("Upload was interrupted before completion") from exc
        except BaseException:
            await form.close()
            raise

        ctx.filename = upload.filename
        ctx.claimed_type = upload.content_type
        self._advance(ctx, UploadStage.PARSED)
        return form

    def _check_type(self, ctx: UploadContext) -> None:
        if not self.validator.is_allowed_type(ctx.claimed_type):
            raise ValidationError(
                RejectionKind.UNSUPPORTED_TYPE,
                f"Invalid file type: {ctx.claimed_type or 'unknown'}",
            )
        self._advance(ctx, UploadStage.TYPE_VALIDATED)

    def _validate_content(self, ctx: UploadContext) -> bytes:
        assert ctx.temp is not None
        data = ctx.temp.read_bytes()
        verdict = self.validator.validate(data, ctx.claimed_type, ctx.filename)
        ctx.verdict = verdict
        if not verdict.accepted:
            assert verdict.kind is not None
            raise ValidationError(verdict.kind, verdict.message or "Invalid file")
        self._advance(ctx, UploadStage.CONTENT_VALIDATED)
        return data

    async def _check_quota(self, ctx: UploadContext) -> None:
        assert ctx.temp is not None
        snapshot = await self.oracle.get_snapshot()
        decision = self.gate.evaluate(snapshot, ctx.temp.size_bytes)
        ctx.decision = decision
        if not decision.can_proceed:
            exceeded = decision.exceeded_sorted
            raise QuotaExceededError(
                f"Upload would exceed {decision.threshold_percent:g}% of the free tier "
                f"limit for: {', '.join(exceeded)}",
                exceeded=exceeded,
                usage=usage_breakdown(decision.projected),
                threshold_percent=decision.threshold_percent,
                estimated=snapshot.estimated,
                retry_after_seconds=snapshot.period.seconds_until_reset(self.clock()),
            )
        self._advance(ctx, UploadStage.QUOTA_CHECKED)

    async def _store(self, ctx: UploadContext, data: bytes) -> None:
        verdict = ctx.verdict
        assert verdict is not None and verdict.media_type and verdict.extension
        key = f"{self.key_factory()}.{verdict.extension}"
        metadata = {
            "upload-ip": ctx.request.identity,
            "upload-time": self.clock().isoformat(),
            "original-name": self._metadata_name(ctx.filename),
            "file-size": str(len(data)),
        }
        try:
            await self.blob_store.put(key, data, verdict.media_type, metadata)
        except BlobStoreError as exc:
            self.log.error(
                "upload.storage.failed",
                extra={"key": key, "identity": ctx.request.identity, **exc.context()},
                exc_info=True,
            )
            raise StorageError(f"Failed to store file: {exc.message}") from exc

        ctx.stored = StoredObject(
            key=key,
            content_type=verdict.media_type,
            size_bytes=len(data),
            metadata=metadata,
            url=build_public_url(self.public_domain, self.public_path_prefix, key),
        )
        self._advance(ctx, UploadStage.STORED)

    async def _account(self, ctx: UploadContext) -> None:
        assert ctx.stored is not None
        ctx.accounted = await self.oracle.record_upload(ctx.stored.size_bytes)
        self._advance(ctx, UploadStage.ACCOUNTED)

    async def _usage_after_upload(self, ctx: UploadContext) -> UsageSnapshot:
        assert ctx.decision is not None
        projected = ctx.decision.projected
        if not (ctx.accounted and self.oracle.supports_realtime):
            return projected
        refreshed = await self.oracle.get_snapshot()
        if refreshed.error is not None:
            return projected
        return refreshed

    def _metadata_name(self, filename: str | None) -> str:
        # Object metadata travels as HTTP headers and must stay ASCII.
        truncated = (filename or "")[: self.original_name_max_length]
        return quote(truncated, safe=" ._-()[]")
