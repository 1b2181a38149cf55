"""Temporary buffers for uploads awaiting validation and storage."""

from __future__ import annotations

import logging
import shutil
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from starlette.datastructures import UploadFile

from .upload_errors import FileTooLargeError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TempUploadHandle:
    """Temp file holding one upload; ``release`` may be called any number of times."""

    upload_id: str
    directory: Path
    path: Path
    size_bytes: int
    released: bool = False
    log: logging.Logger = field(default_factory=lambda: logger, repr=False)

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def release(self) -> bool:
        """Delete the buffer; returns ``False`` when nothing was left to delete."""
        if self.released:
            return False
        self.released = True
        if self.directory.exists():
            shutil.rmtree(self.directory, ignore_errors=True)
        self.log.debug("upload.temp.released", extra={"upload_id": self.upload_id})
        return True


@dataclass(slots=True)
class TempUploadStore:
    """Manages lifecycle of temporary upload files."""

    root: Path
    ttl_seconds: int = 60 * 60
    chunk_size_bytes: int = 256 * 1024
    log: logging.Logger = field(default_factory=lambda: logger)

    def ensure_structure(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    async def persist_upload(self, upload: UploadFile, *, max_bytes: int) -> TempUploadHandle:
        """Stream the multipart file to disk, failing once it passes ``max_bytes``."""
        upload_id = uuid.uuid4().hex
        directory = self.ensure_structure() / upload_id
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / "payload.bin"

        size = 0
        try:
            with target.open("wb") as sink:
                while True:
                    chunk = await upload.read(self.chunk_size_bytes)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > max_bytes:
                        self.log.warning(
                            "upload.temp.too_large",
                            extra={"upload_id": upload_id, "size_bytes": size, "limit_bytes": max_bytes},
                        )
                        raise FileTooLargeError(f"File too large (limit {max_bytes} bytes)")
                    sink.write(chunk)
        except BaseException:
            shutil.rmtree(directory, ignore_errors=True)
            raise

        self.log.info(
            "upload.temp.persisted",
            extra={"upload_id": upload_id, "size_bytes": size, "path": str(target)},
        )
        return TempUploadHandle(
            upload_id=upload_id,
            directory=directory,
            path=target,
            size_bytes=size,
        )

    def cleanup_expired(self, reference_time: float | None = None) -> int:
        """Purge buffers older than the TTL, such as those left by dropped requests."""
        if not self.root.exists():
            return 0
        now = reference_time if reference_time is not None else time.time()
        removed = 0
        for entry in self.root.iterdir():
            try:
                age = now - entry.stat().st_mtime
            except FileNotFoundError:
                continue
            if age < self.ttl_seconds:
                continue
            if entry.is_dir():
                shutil.rmtree(entry, ignore_errors=True)
            else:
                entry.unlink(missing_ok=True)
            removed += 1
            self.log.info("upload.temp.cleanup.removed", extra={"path": str(entry)})
        return removed
