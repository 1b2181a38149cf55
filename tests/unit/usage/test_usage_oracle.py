import asyncio
from datetime import datetime, timezone

import pytest

from freebucket.usage.billing_period import BillingPeriod
from freebucket.usage.memory_source import InMemoryUsageSource
from freebucket.usage.sources_base import UsageSource
from freebucket.usage.usage_errors import UsageOracleError, UsageSourceMisconfigured
from freebucket.usage.usage_models import (
    QuotaDimension,
    SourceCapability,
    UsageLimits,
    UsageReading,
)
from freebucket.usage.usage_oracle import UsageOracle

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
LIMITS = UsageLimits(storage_bytes=1_000, class_a_operations=100, class_b_operations=1_000)


class StaticSource(UsageSource):
    name = "static"

    def __init__(self, reading: UsageReading) -> None:
        self.reading = reading

    async def read(self, period: BillingPeriod) -> UsageReading:
        return self.reading


class RaisingSource(UsageSource):
    name = "raising"

    def __init__(self, error: BaseException) -> None:
        self.error = error

    async def read(self, period: BillingPeriod) -> UsageReading:
        raise self.error


class SlowSource(UsageSource):
    name = "slow"
    capabilities = frozenset({SourceCapability.READ, SourceCapability.INCREMENT})

    async def read(self, period: BillingPeriod) -> UsageReading:
        await asyncio.sleep(5)
        return UsageReading()

    async def increment(self, dimension, *, size_bytes=0, period):
        await asyncio.sleep(5)


def build_oracle(source: UsageSource, **kwargs) -> UsageOracle:
    return UsageOracle(source=source, limits=LIMITS, clock=lambda: NOW, **kwargs)


@pytest.mark.asyncio
async def test_snapshot_reflects_source_reading() -> None:
    oracle = build_oracle(
        StaticSource(UsageReading(storage_bytes=250, class_a_operations=10, class_b_operations=5))
    )

    snapshot = await oracle.get_snapshot()

    assert snapshot.error is None
    assert snapshot.estimated is False
    assert snapshot.percentage(QuotaDimension.STORAGE) == 25.0
    assert snapshot.period.key == "2026-03"
    assert snapshot.last_updated == NOW


@pytest.mark.asyncio
async def test_negative_counters_are_clamped() -> None:
    oracle = build_oracle(StaticSource(UsageReading(storage_bytes=-5, class_a_operations=-1)))

    snapshot = await oracle.get_snapshot()

    assert snapshot.storage_bytes == 0
    assert snapshot.class_a_operations == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        UsageOracleError("GraphQL errors: bad token"),
        UsageSourceMisconfigured(["CLOUDFLARE_EMAIL"]),
        KeyError("viewer"),
        ValueError("not a number"),
    ],
)
async def test_failures_degrade_to_conservative_snapshot(error: Exception) -> None:
    oracle = build_oracle(RaisingSource(error), fallback_percent=60)

    snapshot = await oracle.get_snapshot()

    assert snapshot.estimated is True
    assert snapshot.error
    for dimension in QuotaDimension:
        assert snapshot.percentage(dimension) == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_timeout_degrades_to_fallback() -> None:
    oracle = build_oracle(SlowSource(), timeout_seconds=0.01)

    snapshot = await oracle.get_snapshot()

    assert snapshot.estimated is True
    assert "timed out" in (snapshot.error or "")


@pytest.mark.asyncio
async def test_misconfiguration_message_lists_missing_settings() -> None:
    oracle = build_oracle(RaisingSource(UsageSourceMisconfigured(["A", "B"])))

    snapshot = await oracle.get_snapshot()

    assert snapshot.error == "Missing configuration: A, B"


@pytest.mark.asyncio
async def test_record_upload_increments_memory_source() -> None:
    source = InMemoryUsageSource()
    oracle = build_oracle(source)

    assert await oracle.record_upload(300) is True

    snapshot = await oracle.get_snapshot()
    assert snapshot.storage_bytes == 300
    assert snapshot.class_a_operations == 1
    assert snapshot.object_count == 1


@pytest.mark.asyncio
async def test_record_upload_skipped_for_read_only_source() -> None:
    oracle = build_oracle(StaticSource(UsageReading()))

    assert await oracle.record_upload(300) is False
    assert oracle.supports_realtime is False


@pytest.mark.asyncio
async def test_record_upload_timeout_is_swallowed() -> None:
    oracle = build_oracle(SlowSource(), timeout_seconds=0.01)

    assert await oracle.record_upload(300) is False
