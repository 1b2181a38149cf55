"""Domain-specific exceptions for the upload pipeline.

Every error maps to one HTTP status and a stable ``error_code`` that clients
branch on; ``message`` is free text for humans.
"""

from __future__ import annotations

from typing import Any

from .upload_models import RejectionKind


class UploadError(Exception):
    """Base class for upload rejections and failures."""

    status_code = 500
    error_code = "upload_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> dict[str, Any]:
        return {"error": self.error_code, "message": self.message}

    def headers(self) -> dict[str, str]:
        return {}


class OriginForbiddenError(UploadError):
    """Raised when the Origin header is not allow-listed."""

    status_code = 403
    error_code = "origin_forbidden"


class RateLimitError(UploadError):
    """Raised when the caller exhausted its sliding window."""

    status_code = 429
    error_code = "rate_limited"

    def __init__(self, message: str, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def payload(self) -> dict[str, Any]:
        body = super().payload()
        body["retryAfterSeconds"] = self.retry_after_seconds
        return body

    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}


class RequestTooLargeError(UploadError):
    """Raised when Content-Length exceeds the request ceiling."""

    status_code = 413
    error_code = "request_too_large"


class FileTooLargeError(UploadError):
    """Raised when the file part exceeds the per-file limit while streaming."""

    status_code = 413
    error_code = "file_too_large"


class MalformedUploadError(UploadError):
    """Raised when the multipart body is missing the file or breaks form limits."""

    status_code = 400
    error_code = "invalid_request"


class UploadCancelledError(UploadError):
    """Raised when the client disconnects before the body is complete."""

    status_code = 400
    error_code = "upload_incomplete"


class ValidationError(UploadError):
    """Raised when the content validator rejects the file."""

    status_code = 400

    def __init__(self, kind: RejectionKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.error_code = kind.value


class QuotaExceededError(UploadError):
    """Raised when the projected usage crosses the block threshold."""

    status_code = 429
    error_code = "quota_exceeded"

    def __init__(
        self,
        message: str,
        *,
        exceeded: list[str],
        usage: dict[str, Any],
        threshold_percent: float,
        estimated: bool,
        retry_after_seconds: int | None = None,
    ) -> None:
        super().__init__(message)
        self.exceeded = exceeded
        self.usage = usage
        self.threshold_percent = threshold_percent
        self.estimated = estimated
        self.retry_after_seconds = retry_after_seconds

    def payload(self) -> dict[str, Any]:
        body = super().payload()
        body["exceeded"] = self.exceeded
        body["usage"] = self.usage
        body["thresholdPercent"] = self.threshold_percent
        body["estimated"] = self.estimated
        if self.retry_after_seconds is not None:
            body["retryAfterSeconds"] = self.retry_after_seconds
        return body


class StorageError(UploadError):
    """Raised when the blob store write fails or times out."""

    status_code = 500
    error_code = "storage_error"
