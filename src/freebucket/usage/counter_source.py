"""Usage source backed by the remote counter service."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import urljoin

import httpx

from .billing_period import BillingPeriod
from .sources_base import UsageSource
from .usage_errors import UsageOracleError, UsageSourceMisconfigured
from .usage_models import QuotaDimension, SourceCapability, UsageReading

logger = logging.getLogger(__name__)


def _parse_timestamp(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(slots=True)
class CounterServiceSource(UsageSource):
    """Read and increment monthly counters kept by the tracker service."""

    base_url: str | None
    api_secret: str | None
    timeout_seconds: float = 10.0
    log: logging.Logger = field(default_factory=lambda: logger)

    name = "counter"
    capabilities = frozenset(
        {SourceCapability.READ, SourceCapability.INCREMENT, SourceCapability.REALTIME}
    )

    async def read(self, period: BillingPeriod) -> UsageReading:
        self._ensure_configured()
        body = await self._request("GET", "usage")
        month = body.get("month")
        if month and month != period.key:
            raise UsageOracleError(
                f"Counter service reported period {month}, expected {period.key}"
            )
        try:
            return UsageReading(
                storage_bytes=int(body.get("storageBytes") or 0),
                class_a_operations=int(body.get("classAOperations") or 0),
                class_b_operations=int(body.get("classBOperations") or 0),
                last_updated=_parse_timestamp(body.get("lastUpdated")),
                details={
                    "month": month,
                    "storageLastUpdated": body.get("storageLastUpdated"),
                },
            )
        except (TypeError, ValueError) as exc:
            raise UsageOracleError(f"Counter service returned malformed usage: {exc}") from exc

    async def increment(
        self,
        dimension: QuotaDimension,
        *,
        size_bytes: int = 0,
        period: BillingPeriod,
    ) -> None:
        if dimension is QuotaDimension.STORAGE:
            raise ValueError("Storage grows with class A increments, not on its own")
        self._ensure_configured()
        payload: dict[str, Any] = {"operation": dimension.value}
        if size_bytes > 0 and dimension is QuotaDimension.CLASS_A:
            payload["fileSize"] = size_bytes
        body = await self._request("POST", "increment", json=payload)
        if not body.get("success"):
            raise UsageOracleError(f"Counter service rejected increment: {body.get('error')}")
        self.log.info(
            "usage.counter.incremented",
            extra={"operation": dimension.value, "size_bytes": size_bytes, "month": body.get("month")},
        )

    async def _request(
        self, method: str, path: str, *, json: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        url = urljoin(str(self.base_url).rstrip("/") + "/", path)
        headers = {"Authorization": f"Bearer {self.api_secret}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as exc:
            raise UsageOracleError(f"Counter service unreachable: {exc}") from exc
        if response.status_code != 200:
            raise UsageOracleError(
                f"Counter service {path} failed with status {response.status_code}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise UsageOracleError("Counter service returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise UsageOracleError("Counter service returned unexpected payload")
        return body

    def missing_settings(self) -> list[str]:
        required = {
            "USAGE_COUNTER_URL": self.base_url,
            "USAGE_COUNTER_SECRET": self.api_secret,
        }
        return [name for name, value in required.items() if not value]

    def _ensure_configured(self) -> None:
        missing = self.missing_settings()
        if missing:
            raise UsageSourceMisconfigured(missing)
