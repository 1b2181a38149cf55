"""Domain types of the usage counter service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class TrackerOperation(StrEnum):
    CLASS_A = "classA"
    CLASS_B = "classB"


@dataclass(slots=True)
class MonthlyUsage:
    month: str
    storage_bytes: int
    class_a_operations: int
    class_b_operations: int
    created_at: datetime
    last_updated: datetime
    storage_last_updated: datetime

    def as_payload(self) -> dict[str, object]:
        return {
            "storageBytes": self.storage_bytes,
            "classAOperations": self.class_a_operations,
            "classBOperations": self.class_b_operations,
            "month": self.month,
            "lastUpdated": self.last_updated.isoformat(),
            "storageLastUpdated": self.storage_last_updated.isoformat(),
        }
