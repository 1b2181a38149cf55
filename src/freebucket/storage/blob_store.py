"""Blob store contract used by the upload pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping


class BlobStore(ABC):
    """Write-only view of an object store.

    Keys are chosen by the caller. Implementations raise
    :class:`~freebucket.storage.storage_errors.BlobStoreError` on failure and
    never retry on their own.
    """

    name: str = "blob-store"

    @abstractmethod
    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Mapping[str, str],
    ) -> str | None:
        """Store ``data`` under ``key`` and return the store's ETag when known."""

    async def aclose(self) -> None:
        return None
