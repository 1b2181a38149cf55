"""Data structures for the upload pipeline."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from starlette.datastructures import FormData

    from ..usage.usage_models import QuotaDecision, UsageSnapshot
    from .temp_store import TempUploadHandle


class UploadStage(StrEnum):
    """Linear states an upload moves through before responding."""

    RECEIVED = "received"
    ORIGIN_CHECKED = "origin_checked"
    RATE_CHECKED = "rate_checked"
    SIZE_CHECKED = "size_checked"
    PARSED = "parsed"
    TYPE_VALIDATED = "type_validated"
    CONTENT_VALIDATED = "content_validated"
    QUOTA_CHECKED = "quota_checked"
    STORED = "stored"
    ACCOUNTED = "accounted"
    RESPONDED = "responded"
    REJECTED = "rejected"
    FAILED = "failed"


class RejectionKind(StrEnum):
    """Reasons the content validator refuses a file."""

    EMPTY_FILE = "empty_file"
    UNSUPPORTED_TYPE = "unsupported_type"
    CONTENT_MISMATCH = "content_mismatch"
    FILE_TOO_LARGE = "file_too_large"
    SUSPICIOUS_CONTENT = "suspicious_content"
    EXTENSION_MISMATCH = "extension_mismatch"


@dataclass(frozen=True, slots=True)
class ValidationVerdict:
    """Either accepted (with the normalised media type) or rejected with a reason."""

    accepted: bool
    media_type: str | None = None
    extension: str | None = None
    kind: RejectionKind | None = None
    message: str | None = None

    @classmethod
    def accept(cls, media_type: str, extension: str) -> "ValidationVerdict":
        return cls(accepted=True, media_type=media_type, extension=extension)

    @classmethod
    def reject(cls, kind: RejectionKind, message: str) -> "ValidationVerdict":
        return cls(accepted=False, kind=kind, message=message)


@dataclass(slots=True)
class UploadRequest:
    """Inbound upload as seen by the orchestrator, detached from HTTP."""

    identity: str
    origin: str | None
    content_length: int | None
    read_form: Callable[[], Awaitable["FormData"]]


@dataclass(slots=True)
class StoredObject:
    key: str
    content_type: str
    size_bytes: int
    metadata: dict[str, str]
    url: str


@dataclass(slots=True)
class UploadContext:
    """State accumulated while one upload moves through the pipeline."""

    request: UploadRequest
    started_at: datetime
    stage: UploadStage = UploadStage.RECEIVED
    temp: "TempUploadHandle | None" = None
    filename: str | None = None
    claimed_type: str | None = None
    verdict: ValidationVerdict | None = None
    decision: "QuotaDecision | None" = None
    stored: StoredObject | None = None
    accounted: bool = False

    def advance(self, stage: UploadStage) -> None:
        self.stage = stage


@dataclass(slots=True)
class UploadResult:
    stored: StoredObject
    usage: "UsageSnapshot"
    accounted: bool
    processing_ms: float
    usage_source: str
