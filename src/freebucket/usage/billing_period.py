"""Calendar-month billing periods."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class BillingPeriod:
    """Usage accumulates from ``start`` (inclusive) until ``end`` (exclusive)."""

    start: datetime
    end: datetime

    @classmethod
    def containing(cls, moment: datetime | None = None) -> "BillingPeriod":
        current = (moment or utcnow()).astimezone(timezone.utc)
        start = current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return cls(start=start, end=end)

    @property
    def key(self) -> str:
        return self.start.strftime("%Y-%m")

    @property
    def label(self) -> str:
        return f"Current month ({self.key})"

    def seconds_until_reset(self, moment: datetime | None = None) -> int:
        current = moment or utcnow()
        return max(0, int((self.end - current).total_seconds()))
