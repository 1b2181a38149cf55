"""Upload content validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Mapping, Sequence

from .upload_models import RejectionKind, ValidationVerdict

logger = logging.getLogger(__name__)

MEDIA_TYPE_ALIASES: Mapping[str, str] = {"image/jpg": "image/jpeg"}

MAGIC_NUMBERS: Mapping[str, bytes] = {
    "image/jpeg": b"\xff\xd8\xff",
    "image/png": b"\x89PNG",
    "image/gif": b"GIF",
    "image/webp": b"RIFF",
}

EXTENSIONS: Mapping[str, Sequence[str]] = {
    "image/jpeg": ("jpg", "jpeg"),
    "image/png": ("png",),
    "image/gif": ("gif",),
    "image/webp": ("webp",),
}

# Best-effort markers of markup or script smuggled into an image prefix.
# A clean scan does not prove the file is harmless.
SUSPICIOUS_MARKERS: Sequence[str] = (
    "<script",
    "<?php",
    "<%",
    "javascript:",
    "data:text/html",
)


def normalize_media_type(media_type: str | None) -> str:
    value = (media_type or "").split(";", 1)[0].strip().lower()
    return MEDIA_TYPE_ALIASES.get(value, value)


def signatures_for(media_types: Sequence[str]) -> dict[str, bytes]:
    """Restrict the known signatures to an allow-list; unknown types are ignored."""
    allowed = {normalize_media_type(media_type) for media_type in media_types}
    return {
        media_type: magic
        for media_type, magic in MAGIC_NUMBERS.items()
        if media_type in allowed
    }


def file_extension(filename: str | None) -> str:
    suffix = PurePosixPath((filename or "").replace("\\", "/")).suffix
    return suffix.lstrip(".").lower()


@dataclass(slots=True)
class ContentValidator:
    """Decide whether an upload's bytes corroborate its claimed type.

    Rules run in a fixed order and the first failure wins: empty file,
    media type allow-list, magic number of the claimed type, size, script
    markers in the leading bytes, then filename extension.
    """

    max_size_bytes: int = 10 * 1024 * 1024
    scan_bytes: int = 1024
    signatures: Mapping[str, bytes] = field(default_factory=lambda: dict(MAGIC_NUMBERS))
    extensions: Mapping[str, Sequence[str]] = field(default_factory=lambda: dict(EXTENSIONS))
    markers: Sequence[str] = SUSPICIOUS_MARKERS
    log: logging.Logger = field(default_factory=lambda: logger)

    def is_allowed_type(self, media_type: str | None) -> bool:
        return normalize_media_type(media_type) in self.signatures

    def validate(
        self,
        data: bytes,
        claimed_media_type: str | None,
        claimed_filename: str | None,
    ) -> ValidationVerdict:
        verdict = self._evaluate(data, claimed_media_type, claimed_filename)
        if not verdict.accepted:
            self.log.warning(
                "upload.validation.rejected",
                extra={
                    "kind": verdict.kind.value if verdict.kind else None,
                    "claimed_type": claimed_media_type,
                    "size_bytes": len(data),
                },
            )
        return verdict

    def _evaluate(
        self,
        data: bytes,
        claimed_media_type: str | None,
        claimed_filename: str | None,
    ) -> ValidationVerdict:
        if not data:
            return ValidationVerdict.reject(RejectionKind.EMPTY_FILE, "Empty file not allowed")

        media_type = normalize_media_type(claimed_media_type)
        signature = self.signatures.get(media_type)
        if signature is None:
            return ValidationVerdict.reject(
                RejectionKind.UNSUPPORTED_TYPE,
                f"Invalid file type: {claimed_media_type or 'unknown'}",
            )

        if not data.startswith(signature):
            return ValidationVerdict.reject(
                RejectionKind.CONTENT_MISMATCH,
                "File type validation failed - file content doesn't match its declared type",
            )

        if len(data) > self.max_size_bytes:
            return ValidationVerdict.reject(
                RejectionKind.FILE_TOO_LARGE,
                f"File too large (limit {self.max_size_bytes} bytes)",
            )

        head = data[: self.scan_bytes].decode("utf-8", errors="replace").lower()
        if any(marker in head for marker in self.markers):
            return ValidationVerdict.reject(
                RejectionKind.SUSPICIOUS_CONTENT, "Suspicious file content detected"
            )

        extension = file_extension(claimed_filename)
        if extension not in self.extensions.get(media_type, ()):
            return ValidationVerdict.reject(
                RejectionKind.EXTENSION_MISMATCH,
                "File extension doesn't match content type",
            )

        return ValidationVerdict.accept(media_type, extension)
