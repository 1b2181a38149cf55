"""Lifecycle helpers wiring background tasks for FastAPI startup."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from .upload.temp_store import TempUploadStore

logger = logging.getLogger(__name__)


def temp_cleanup_once(
    *, temp_store: TempUploadStore, now: float | None = None
) -> int:
    """Run a single temp buffer sweep and return the number of removed entries."""
    return temp_store.cleanup_expired(now if now is not None else time.time())


async def run_periodic_temp_cleanup(
    *,
    temp_store: TempUploadStore,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 900.0,
    clock: Callable[[], float] | None = None,
) -> None:
    """Sweep stale temp buffers until ``shutdown_event`` is signalled."""

    interval = max(1.0, float(interval_seconds))
    tick = clock or time.time
    while not shutdown_event.is_set():
        try:
            removed = temp_cleanup_once(temp_store=temp_store, now=tick())
        except Exception:  # pragma: no cover - logged and retried next tick
            logger.exception("lifecycle.temp_cleanup.failed")
        else:
            if removed:
                logger.info("lifecycle.temp_cleanup.purged", extra={"removed": removed})
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


__all__ = [
    "temp_cleanup_once",
    "run_periodic_temp_cleanup",
]
