"""Data structures for usage accounting and quota decisions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from .billing_period import BillingPeriod

BYTES_PER_GB = 1024 * 1024 * 1024


class QuotaDimension(StrEnum):
    """Independently limited resources of the free tier."""

    STORAGE = "storage"
    CLASS_A = "classA"
    CLASS_B = "classB"


class SourceCapability(StrEnum):
    """Operations a usage source can perform."""

    READ = "read"
    INCREMENT = "increment"
    REALTIME = "realtime"


@dataclass(frozen=True, slots=True)
class UsageLimits:
    storage_bytes: int
    class_a_operations: int
    class_b_operations: int

    @classmethod
    def from_storage_gb(
        cls, storage_gb: float, class_a_operations: int, class_b_operations: int
    ) -> "UsageLimits":
        return cls(
            storage_bytes=int(storage_gb * BYTES_PER_GB),
            class_a_operations=class_a_operations,
            class_b_operations=class_b_operations,
        )

    def for_dimension(self, dimension: QuotaDimension) -> int:
        if dimension is QuotaDimension.STORAGE:
            return self.storage_bytes
        if dimension is QuotaDimension.CLASS_A:
            return self.class_a_operations
        return self.class_b_operations


@dataclass(slots=True)
class UsageReading:
    """Raw counters returned by a usage source."""

    storage_bytes: int = 0
    class_a_operations: int = 0
    class_b_operations: int = 0
    object_count: int | None = None
    last_updated: datetime | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class UsageSnapshot:
    """Point-in-time usage of every dimension, paired with its limit."""

    storage_bytes: int
    class_a_operations: int
    class_b_operations: int
    limits: UsageLimits
    period: BillingPeriod
    source: str
    last_updated: datetime
    object_count: int | None = None
    error: str | None = None
    estimated: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def current(self, dimension: QuotaDimension) -> int:
        if dimension is QuotaDimension.STORAGE:
            return self.storage_bytes
        if dimension is QuotaDimension.CLASS_A:
            return self.class_a_operations
        return self.class_b_operations

    def percentage(self, dimension: QuotaDimension) -> float:
        limit = self.limits.for_dimension(dimension)
        if limit <= 0:
            # A zero limit leaves no headroom at all.
            return 100.0
        return self.current(dimension) / limit * 100

    @property
    def storage_gb(self) -> float:
        return self.storage_bytes / BYTES_PER_GB

    def with_upload(self, size_bytes: int) -> "UsageSnapshot":
        """Project usage after one PUT of ``size_bytes``."""
        return replace(
            self,
            storage_bytes=self.storage_bytes + size_bytes,
            class_a_operations=self.class_a_operations + 1,
            object_count=None if self.object_count is None else self.object_count + 1,
            details=dict(self.details),
        )


@dataclass(frozen=True, slots=True)
class QuotaDecision:
    can_proceed: bool
    exceeded: frozenset[QuotaDimension]
    projected: UsageSnapshot
    threshold_percent: float

    @property
    def exceeded_sorted(self) -> list[str]:
        order = list(QuotaDimension)
        return [dim.value for dim in sorted(self.exceeded, key=order.index)]
