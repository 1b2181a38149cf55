"""Best-effort usage snapshots with a conservative fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from .billing_period import BillingPeriod, utcnow
from .sources_base import UsageSource
from .usage_errors import UsageOracleError
from .usage_models import QuotaDimension, SourceCapability, UsageLimits, UsageSnapshot

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UsageOracle:
    """Fetch usage snapshots from the configured source.

    ``get_snapshot`` never raises. When the source fails, times out or is
    misconfigured, the snapshot assumes ``fallback_percent`` of every limit
    is already consumed and carries the failure in ``error``, so callers
    default to refusing uploads rather than overrunning the quota.
    """

    source: UsageSource
    limits: UsageLimits
    timeout_seconds: float = 10.0
    fallback_percent: float = 60.0
    clock: Callable[[], datetime] = utcnow
    log: logging.Logger = field(default_factory=lambda: logger)

    @property
    def source_name(self) -> str:
        return self.source.name

    @property
    def supports_realtime(self) -> bool:
        return self.source.supports(SourceCapability.REALTIME)

    def current_period(self) -> BillingPeriod:
        return BillingPeriod.containing(self.clock())

    async def get_snapshot(self) -> UsageSnapshot:
        period = self.current_period()
        try:
            reading = await asyncio.wait_for(
                self.source.read(period), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            return self.fallback_snapshot(
                period, f"Usage source '{self.source.name}' timed out after {self.timeout_seconds}s"
            )
        except UsageOracleError as exc:
            return self.fallback_snapshot(period, str(exc))
        except Exception as exc:  # noqa: BLE001 - the oracle must never raise
            self.log.exception("usage.oracle.unexpected_error", extra={"source": self.source.name})
            return self.fallback_snapshot(period, f"Unexpected usage source failure: {exc}")

        return UsageSnapshot(
            storage_bytes=max(0, reading.storage_bytes),
            class_a_operations=max(0, reading.class_a_operations),
            class_b_operations=max(0, reading.class_b_operations),
            limits=self.limits,
            period=period,
            source=self.source.name,
            last_updated=reading.last_updated or self.clock(),
            object_count=reading.object_count,
            details=dict(reading.details),
        )

    def fallback_snapshot(self, period: BillingPeriod, error: str) -> UsageSnapshot:
        ratio = max(0.0, self.fallback_percent) / 100
        self.log.warning(
            "usage.oracle.fallback",
            extra={
                "source": self.source.name,
                "error": error,
                "assumed_percent": self.fallback_percent,
            },
        )
        return UsageSnapshot(
            storage_bytes=round(self.limits.storage_bytes * ratio),
            class_a_operations=round(self.limits.class_a_operations * ratio),
            class_b_operations=round(self.limits.class_b_operations * ratio),
            limits=self.limits,
            period=period,
            source=self.source.name,
            last_updated=self.clock(),
            error=error,
            estimated=True,
        )

    async def record_upload(self, size_bytes: int) -> bool:
        """Count one stored object; failures are logged and reported as ``False``."""
        if not self.source.supports(SourceCapability.INCREMENT):
            self.log.debug(
                "usage.oracle.increment_unsupported", extra={"source": self.source.name}
            )
            return False
        period = self.current_period()
        try:
            await asyncio.wait_for(
                self.source.increment(
                    QuotaDimension.CLASS_A, size_bytes=size_bytes, period=period
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self.log.warning(
                "usage.oracle.increment_timeout",
                extra={"source": self.source.name, "size_bytes": size_bytes},
            )
            return False
        except Exception as exc:  # noqa: BLE001 - accounting never fails an upload
            self.log.warning(
                "usage.oracle.increment_failed",
                extra={"source": self.source.name, "size_bytes": size_bytes, "error": str(exc)},
            )
            return False
        return True

    async def aclose(self) -> None:
        await self.source.aclose()
