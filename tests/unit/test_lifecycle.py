import asyncio
import os
import time
from pathlib import Path

import pytest

from freebucket.lifecycle import run_periodic_temp_cleanup, temp_cleanup_once
from freebucket.upload.temp_store import TempUploadStore


def make_stale_entry(root: Path, name: str, age_seconds: float) -> Path:
    entry = root / name
    entry.mkdir(parents=True)
    (entry / "payload.bin").write_bytes(b"x")
    stamp = time.time() - age_seconds
    os.utime(entry, (stamp, stamp))
    return entry


def test_cleanup_once_removes_only_expired(tmp_path: Path) -> None:
    store = TempUploadStore(root=tmp_path, ttl_seconds=60)
    stale = make_stale_entry(tmp_path, "stale", 120)
    fresh = make_stale_entry(tmp_path, "fresh", 5)

    assert temp_cleanup_once(temp_store=store) == 1
    assert not stale.exists()
    assert fresh.exists()


@pytest.mark.asyncio
async def test_periodic_cleanup_stops_on_shutdown(tmp_path: Path) -> None:
    store = TempUploadStore(root=tmp_path, ttl_seconds=60)
    stale = make_stale_entry(tmp_path, "stale", 120)
    shutdown = asyncio.Event()

    task = asyncio.create_task(
        run_periodic_temp_cleanup(temp_store=store, shutdown_event=shutdown, interval_seconds=60)
    )
    await asyncio.sleep(0.05)
    shutdown.set()
    await asyncio.wait_for(task, timeout=1)

    assert not stale.exists()
