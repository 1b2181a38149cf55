import asyncio
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient

from freebucket.usage.memory_source import InMemoryUsageSource
from freebucket.usage.quota_gate import QuotaGate
from freebucket.usage.sources_base import UsageSource
from freebucket.usage.usage_api import router
from freebucket.usage.usage_models import UsageLimits
from freebucket.usage.usage_oracle import UsageOracle
from freebucket.usage.usage_service import UsageService
from tests.helpers.uploads import build_config

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


class SlowSource(UsageSource):
    name = "slow"

    async def read(self, period):
        await asyncio.sleep(5)


class CredentialSource(InMemoryUsageSource):
    name = "credentials"

    async def verify_credentials(self):
        return {"success": True, "targetAccountFound": True}


class ExplodingService:
    async def report(self):
        raise RuntimeError("report exploded")

    async def verify_credentials(self):
        raise AttributeError("'list' object has no attribute 'get'")


def build_client(service, tmp_path: Path, environment: str = "production") -> TestClient:
    app = FastAPI()
    app.state.usage_service = service
    app.state.config = build_config(tmp_path, environment=environment)
    app.include_router(router)
    return TestClient(app, raise_server_exceptions=False)


def build_service(source: UsageSource, *, timeout: float = 10.0) -> UsageService:
    oracle = UsageOracle(
        source=source,
        limits=UsageLimits.from_storage_gb(10, 1_000_000, 10_000_000),
        timeout_seconds=timeout,
        clock=lambda: NOW,
    )
    return UsageService(oracle=oracle, gate=QuotaGate(threshold_percent=50))


def test_usage_report_shape(tmp_path: Path) -> None:
    client = build_client(build_service(InMemoryUsageSource()), tmp_path)

    response = client.get("/usage")

    assert response.status_code == 200
    usage = response.json()["usage"]
    assert usage["storage"]["currentBytes"] == 0
    assert usage["storage"]["limit"] == 10.0
    assert usage["classA"] == {"currentValue": 0, "limit": 1_000_000, "percentage": 0.0}
    assert usage["shouldBlockUploads"] is False
    assert usage["warnings"] == []
    assert usage["period"] == "Current month (2026-03)"
    assert usage["source"] == "memory"
    assert "debug" not in response.json()


def test_source_timeout_still_returns_200(tmp_path: Path) -> None:
    client = build_client(build_service(SlowSource(), timeout=0.05), tmp_path)

    response = client.get("/usage")

    assert response.status_code == 200
    usage = response.json()["usage"]
    assert usage["estimated"] is True
    assert usage["shouldBlockUploads"] is True
    assert any("timed out" in warning for warning in usage["warnings"])


def test_debug_auth_runs_credential_check(tmp_path: Path) -> None:
    client = build_client(build_service(CredentialSource()), tmp_path)

    response = client.get("/usage", params={"debug": "auth"})

    assert response.status_code == 200
    assert response.json() == {"authTest": {"success": True, "targetAccountFound": True}}


def test_report_failure_is_generic_in_production(tmp_path: Path) -> None:
    client = build_client(ExplodingService(), tmp_path)

    response = client.get("/usage")

    assert response.status_code == 500
    assert response.json() == {"error": "usage_failed", "message": "Failed to fetch usage"}


def test_report_failure_details_in_development(tmp_path: Path) -> None:
    client = build_client(ExplodingService(), tmp_path, environment="development")

    body = client.get("/usage").json()

    assert body["message"] == "report exploded"
    assert "RuntimeError" in body["stack"]


def test_auth_check_failure_returns_json_error(tmp_path: Path) -> None:
    client = build_client(ExplodingService(), tmp_path)

    response = client.get("/usage", params={"debug": "auth"})

    assert response.status_code == 500
    assert response.headers["content-type"] == "application/json"
    assert response.json() == {"error": "auth_test_failed", "message": "Auth test failed"}


def test_auth_check_failure_details_in_development(tmp_path: Path) -> None:
    client = build_client(ExplodingService(), tmp_path, environment="development")

    body = client.get("/usage", params={"debug": "auth"}).json()

    assert body["error"] == "auth_test_failed"
    assert "has no attribute" in body["message"]
    assert "AttributeError" in body["stack"]
