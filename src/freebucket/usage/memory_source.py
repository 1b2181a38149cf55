"""In-process usage counters."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime

from .billing_period import BillingPeriod, utcnow
from .sources_base import UsageSource
from .usage_models import QuotaDimension, SourceCapability, UsageReading


@dataclass(slots=True)
class _PeriodCounters:
    storage_bytes: int = 0
    class_a_operations: int = 0
    class_b_operations: int = 0
    object_count: int = 0
    last_updated: datetime | None = None


class InMemoryUsageSource(UsageSource):
    """Counters living in process memory.

    State is lost on restart and is not shared between instances, so it
    undercounts whenever more than one process serves uploads. Swap in
    :class:`CounterServiceSource` when cross-instance totals matter.
    """

    name = "memory"
    capabilities = frozenset(
        {SourceCapability.READ, SourceCapability.INCREMENT, SourceCapability.REALTIME}
    )

    def __init__(self) -> None:
        self._periods: dict[str, _PeriodCounters] = {}
        self._lock = threading.Lock()

    async def read(self, period: BillingPeriod) -> UsageReading:
        with self._lock:
            counters = self._periods.get(period.key) or _PeriodCounters()
            return UsageReading(
                storage_bytes=counters.storage_bytes,
                class_a_operations=counters.class_a_operations,
                class_b_operations=counters.class_b_operations,
                object_count=counters.object_count,
                last_updated=counters.last_updated,
            )

    async def increment(
        self,
        dimension: QuotaDimension,
        *,
        size_bytes: int = 0,
        period: BillingPeriod,
    ) -> None:
        with self._lock:
            self._drop_stale_periods(period)
            counters = self._periods.setdefault(period.key, _PeriodCounters())
            if dimension is QuotaDimension.CLASS_B:
                counters.class_b_operations += 1
            else:
                counters.class_a_operations += 1
                if size_bytes > 0:
                    counters.storage_bytes += size_bytes
                    counters.object_count += 1
            counters.last_updated = utcnow()

    def _drop_stale_periods(self, current: BillingPeriod) -> None:
        for key in [key for key in self._periods if key != current.key]:
            del self._periods[key]
