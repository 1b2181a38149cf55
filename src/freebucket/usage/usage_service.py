"""Usage reporting built on the oracle and the quota gate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .quota_gate import QuotaGate
from .usage_models import BYTES_PER_GB, QuotaDimension, UsageSnapshot
from .usage_oracle import UsageOracle
from .usage_schemas import (
    OperationUsageSchema,
    StorageUsageSchema,
    UsageReportSchema,
    UsageResponseSchema,
    UsageSummarySchema,
)

logger = logging.getLogger(__name__)

DIMENSION_LABELS = {
    QuotaDimension.STORAGE: "Storage",
    QuotaDimension.CLASS_A: "Class A operations",
    QuotaDimension.CLASS_B: "Class B operations",
}


def storage_breakdown(snapshot: UsageSnapshot) -> StorageUsageSchema:
    return StorageUsageSchema(
        current_gb=round(snapshot.storage_gb, 3),
        current_bytes=snapshot.storage_bytes,
        object_count=snapshot.object_count,
        limit=round(snapshot.limits.storage_bytes / BYTES_PER_GB, 3),
        percentage=round(snapshot.percentage(QuotaDimension.STORAGE), 2),
    )


def operation_breakdown(snapshot: UsageSnapshot, dimension: QuotaDimension) -> OperationUsageSchema:
    return OperationUsageSchema(
        current_value=snapshot.current(dimension),
        limit=snapshot.limits.for_dimension(dimension),
        percentage=round(snapshot.percentage(dimension), 2),
    )


def usage_breakdown(snapshot: UsageSnapshot) -> dict[str, Any]:
    """Per-dimension current value, limit and percentage as JSON-ready dict."""
    return {
        "storage": storage_breakdown(snapshot).model_dump(by_alias=True),
        "classA": operation_breakdown(snapshot, QuotaDimension.CLASS_A).model_dump(by_alias=True),
        "classB": operation_breakdown(snapshot, QuotaDimension.CLASS_B).model_dump(by_alias=True),
    }


def usage_summary(snapshot: UsageSnapshot) -> UsageSummarySchema:
    """Render each dimension as ``<label>: <current> of <limit> (<pct>%)``."""
    storage_limit_gb = snapshot.limits.storage_bytes / BYTES_PER_GB
    class_a = snapshot.percentage(QuotaDimension.CLASS_A)
    class_b = snapshot.percentage(QuotaDimension.CLASS_B)
    return UsageSummarySchema(
        storage=(
            f"Storage: {snapshot.storage_gb:.3f} GB of {storage_limit_gb:g} GB "
            f"({snapshot.percentage(QuotaDimension.STORAGE):.2f}%)"
        ),
        class_a=(
            f"Class A: {snapshot.class_a_operations:,} of "
            f"{snapshot.limits.class_a_operations:,} ({class_a:.2f}%)"
        ),
        class_b=(
            f"Class B: {snapshot.class_b_operations:,} of "
            f"{snapshot.limits.class_b_operations:,} ({class_b:.2f}%)"
        ),
    )


@dataclass(slots=True)
class UsageService:
    """Assemble the ``GET /usage`` payload."""

    oracle: UsageOracle
    gate: QuotaGate
    warning_threshold_percent: float = 80.0
    expose_debug: bool = False
    log: logging.Logger = field(default_factory=lambda: logger)

    async def report(self) -> UsageResponseSchema:
        snapshot = await self.oracle.get_snapshot()
        warnings = self.warnings_for(snapshot)
        # Blocked when even an empty upload would be refused.
        should_block = not self.gate.project(snapshot, 0).can_proceed
        if warnings:
            self.log.warning(
                "usage.report.warnings",
                extra={"warnings": warnings, "source": snapshot.source},
            )
        report = UsageReportSchema(
            storage=storage_breakdown(snapshot),
            class_a=operation_breakdown(snapshot, QuotaDimension.CLASS_A),
            class_b=operation_breakdown(snapshot, QuotaDimension.CLASS_B),
            warnings=warnings,
            should_block_uploads=should_block,
            last_updated=snapshot.last_updated,
            period=snapshot.period.label,
            source=snapshot.source,
            estimated=snapshot.estimated,
        )
        return UsageResponseSchema(
            usage=report,
            debug=self._debug_block(snapshot) if self.expose_debug else None,
        )

    def warnings_for(self, snapshot: UsageSnapshot) -> list[str]:
        warnings: list[str] = []
        missing = self.oracle.source.missing_settings()
        if missing:
            warnings.append(f"Configuration incomplete: missing {', '.join(missing)}")
        for dimension in QuotaDimension:
            percentage = snapshot.percentage(dimension)
            if percentage >= self.warning_threshold_percent:
                warnings.append(f"{DIMENSION_LABELS[dimension]} at {percentage:.1f}%")
        if snapshot.error:
            warnings.append(f"Usage source error: {snapshot.error}")
        if snapshot.estimated:
            warnings.append(
                f"Usage is estimated at {self.oracle.fallback_percent:g}% of each limit "
                "until the usage source recovers"
            )
        return warnings

    async def verify_credentials(self) -> dict[str, Any]:
        check = getattr(self.oracle.source, "verify_credentials", None)
        if check is None:
            return {"error": f"Usage source '{self.oracle.source_name}' has no credential check"}
        return await check()

    def _debug_block(self, snapshot: UsageSnapshot) -> dict[str, Any]:
        return {
            "source": snapshot.source,
            "missingSettings": self.oracle.source.missing_settings(),
            "hasError": snapshot.error is not None,
            "errorMessage": snapshot.error,
            "details": snapshot.details,
            "rawData": {
                "storageBytes": snapshot.storage_bytes,
                "classAOperations": snapshot.class_a_operations,
                "classBOperations": snapshot.class_b_operations,
                "objectCount": snapshot.object_count,
            },
        }
