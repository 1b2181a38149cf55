"""Usage source backed by the Cloudflare GraphQL analytics API."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .billing_period import BillingPeriod
from .sources_base import UsageSource
from .usage_errors import UsageOracleError, UsageSourceMisconfigured
from .usage_models import SourceCapability, UsageReading

logger = logging.getLogger(__name__)

# Writes, lists and deletes; billed as class A.
CLASS_A_ACTIONS = frozenset(
    {
        "ListBuckets",
        "PutBucket",
        "ListObjects",
        "PutObject",
        "CopyObject",
        "CompleteMultipartUpload",
        "CreateMultipartUpload",
        "ListMultipartUploads",
        "UploadPart",
        "UploadPartCopy",
        "ListParts",
        "PutBucketEncryption",
        "PutBucketCors",
        "PutBucketLifecycleConfiguration",
        "DeleteObject",
    }
)

# Reads and metadata lookups; billed as class B.
CLASS_B_ACTIONS = frozenset(
    {
        "HeadBucket",
        "HeadObject",
        "GetObject",
        "UsageSummary",
        "GetBucketEncryption",
        "GetBucketLocation",
        "GetBucketCors",
        "GetBucketLifecycleConfiguration",
    }
)

OPERATIONS_QUERY = """{
  viewer {
    accounts(filter: { accountTag: %(account)s }) {
      r2OperationsAdaptiveGroups(
        filter: { datetime_geq: %(since)s%(bucket)s }
        limit: 9999
      ) {
        dimensions { actionType }
        sum { requests }
      }
    }
  }
}"""

STORAGE_QUERY = """{
  viewer {
    accounts(filter: { accountTag: %(account)s }) {
      r2StorageAdaptiveGroups(
        limit: 9999
        filter: { datetime_geq: %(since)s%(bucket)s }
        orderBy: [datetime_DESC]
      ) {
        max { objectCount uploadCount payloadSize metadataSize }
        dimensions { datetime }
      }
    }
  }
}"""

ACCOUNTS_QUERY = "{ viewer { accounts { id name } } }"


def classify_operations(groups: list[dict[str, Any]]) -> tuple[int, int]:
    """Sum request counts into (class A, class B); unknown actions are ignored."""
    class_a = 0
    class_b = 0
    for group in groups:
        action = (group.get("dimensions") or {}).get("actionType")
        requests = int((group.get("sum") or {}).get("requests") or 0)
        if action in CLASS_A_ACTIONS:
            class_a += requests
        elif action in CLASS_B_ACTIONS:
            class_b += requests
    return class_a, class_b


def _first_account(data: dict[str, Any] | None) -> dict[str, Any] | None:
    accounts = ((data or {}).get("viewer") or {}).get("accounts") or []
    return accounts[0] if accounts else None


@dataclass(slots=True)
class AnalyticsQuerySource(UsageSource):
    """Query month-to-date operations and storage from the analytics backend.

    Analytics lag behind real traffic by minutes, so readings taken right
    after an upload may not include it yet.
    """

    email: str | None
    global_api_key: str | None
    account_id: str | None
    bucket_name: str | None = None
    endpoint: str = "https://api.cloudflare.com/client/v4/graphql"
    timeout_seconds: float = 10.0
    log: logging.Logger = field(default_factory=lambda: logger)

    name = "analytics"
    capabilities = frozenset({SourceCapability.READ})

    async def read(self, period: BillingPeriod) -> UsageReading:
        self._ensure_configured()
        operations_data, storage_data = await asyncio.gather(
            self._execute(self._build_query(OPERATIONS_QUERY, period)),
            self._execute(self._build_query(STORAGE_QUERY, period)),
        )
        class_a, class_b = self.process_operations(operations_data)
        storage = self.process_storage(storage_data)
        self.log.info(
            "usage.analytics.fetched",
            extra={
                "class_a": class_a,
                "class_b": class_b,
                "storage_bytes": storage["total_bytes"],
                "period": period.key,
            },
        )
        return UsageReading(
            storage_bytes=storage["total_bytes"],
            class_a_operations=class_a,
            class_b_operations=class_b,
            object_count=storage["object_count"],
            details={
                "payloadSize": storage["payload_size"],
                "metadataSize": storage["metadata_size"],
                "lastDataPoint": storage["datetime"],
            },
        )

    @staticmethod
    def process_operations(data: dict[str, Any] | None) -> tuple[int, int]:
        account = _first_account(data)
        if account is None:
            return 0, 0
        return classify_operations(account.get("r2OperationsAdaptiveGroups") or [])

    @staticmethod
    def process_storage(data: dict[str, Any] | None) -> dict[str, Any]:
        empty = {
            "total_bytes": 0,
            "object_count": 0,
            "payload_size": 0,
            "metadata_size": 0,
            "datetime": None,
        }
        account = _first_account(data)
        if account is None:
            return empty
        groups = account.get("r2StorageAdaptiveGroups") or []
        if not groups:
            return empty
        # Ordered by datetime DESC: the first group is the current level.
        latest = groups[0]
        maxima = latest.get("max") or {}
        payload_size = int(maxima.get("payloadSize") or 0)
        metadata_size = int(maxima.get("metadataSize") or 0)
        return {
            "total_bytes": payload_size + metadata_size,
            "object_count": int(maxima.get("objectCount") or 0),
            "payload_size": payload_size,
            "metadata_size": metadata_size,
            "datetime": (latest.get("dimensions") or {}).get("datetime"),
        }

    async def verify_credentials(self) -> dict[str, Any]:
        """List visible accounts and report whether the configured one is among them."""
        missing = self.missing_settings()
        if missing:
            return {"error": "Missing credentials", "missing": missing}
        try:
            data = await self._execute(ACCOUNTS_QUERY)
        except UsageOracleError as exc:
            return {"error": f"Auth test failed: {exc}"}
        accounts = ((data or {}).get("viewer") or {}).get("accounts") or []
        target = next((acc for acc in accounts if acc.get("id") == self.account_id), None)
        return {
            "success": True,
            "accounts": accounts,
            "targetAccountFound": target is not None,
            "targetAccount": target,
            "accountId": self.account_id,
        }

    def missing_settings(self) -> list[str]:
        required = {
            "CLOUDFLARE_EMAIL": self.email,
            "CLOUDFLARE_GLOBAL_API_KEY": self.global_api_key,
            "CLOUDFLARE_ACCOUNT_ID": self.account_id,
        }
        return [name for name, value in required.items() if not value]

    def _build_query(self, template: str, period: BillingPeriod) -> str:
        since = period.start.strftime("%Y-%m-%dT%H:%M:%S.000Z")
        bucket = f", bucketName: {json.dumps(self.bucket_name)}" if self.bucket_name else ""
        return template % {
            "account": json.dumps(self.account_id),
            "since": json.dumps(since),
            "bucket": bucket,
        }

    async def _execute(self, query: str) -> dict[str, Any]:
        headers = {
            "X-AUTH-EMAIL": str(self.email),
            "X-AUTH-KEY": str(self.global_api_key),
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.endpoint, headers=headers, json={"query": query})
        except httpx.HTTPError as exc:
            raise UsageOracleError(f"GraphQL request failed: {exc}") from exc
        if response.status_code != 200:
            raise UsageOracleError(
                f"GraphQL request failed: {response.status_code} - {response.text[:200]}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise UsageOracleError("GraphQL response is not valid JSON") from exc
        if not isinstance(body, dict):
            raise UsageOracleError("GraphQL response is not a JSON object")
        if body.get("errors"):
            raise UsageOracleError(f"GraphQL errors: {json.dumps(body['errors'])[:500]}")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise UsageOracleError("GraphQL response data is not a JSON object")
        return data

    def _ensure_configured(self) -> None:
        missing = self.missing_settings()
        if missing:
            raise UsageSourceMisconfigured(missing)
