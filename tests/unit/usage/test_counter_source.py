from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from freebucket.usage.billing_period import BillingPeriod
from freebucket.usage.counter_source import CounterServiceSource
from freebucket.usage.usage_errors import UsageOracleError, UsageSourceMisconfigured
from freebucket.usage.usage_models import QuotaDimension

PERIOD = BillingPeriod.containing(datetime(2026, 3, 14, tzinfo=timezone.utc))


class DummyResponse:
    def __init__(self, status_code: int, payload: Any) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class DummyAsyncClient:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = responses
        self.calls: list[dict[str, Any]] = []

    async def __aenter__(self) -> "DummyAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        return None

    async def request(self, method: str, url: str, headers: dict[str, str], json: Any = None):
        self.calls.append({"method": method, "url": url, "headers": headers, "json": json})
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def client_factory(monkeypatch):
    def install(*responses: Any) -> DummyAsyncClient:
        client = DummyAsyncClient(list(responses))
        monkeypatch.setattr("httpx.AsyncClient", lambda timeout: client)
        return client

    return install


def build_source() -> CounterServiceSource:
    return CounterServiceSource(base_url="https://tracker.example.com/", api_secret="s3cret")


@pytest.mark.asyncio
async def test_read_parses_counter_payload(client_factory) -> None:
    client = client_factory(
        DummyResponse(
            200,
            {
                "storageBytes": 4096,
                "classAOperations": 12,
                "classBOperations": 40,
                "month": "2026-03",
                "lastUpdated": "2026-03-14T10:00:00Z",
                "storageLastUpdated": "2026-03-14T09:00:00Z",
            },
        )
    )

    reading = await build_source().read(PERIOD)

    assert reading.storage_bytes == 4096
    assert reading.class_a_operations == 12
    assert reading.class_b_operations == 40
    assert reading.last_updated == datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)
    assert client.calls[0]["method"] == "GET"
    assert client.calls[0]["url"] == "https://tracker.example.com/usage"
    assert client.calls[0]["headers"]["Authorization"] == "Bearer s3cret"


@pytest.mark.asyncio
async def test_read_rejects_other_month(client_factory) -> None:
    client_factory(DummyResponse(200, {"storageBytes": 1, "month": "2026-02"}))

    with pytest.raises(UsageOracleError, match="2026-02"):
        await build_source().read(PERIOD)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        DummyResponse(500, {"error": "boom"}),
        DummyResponse(200, ValueError("not json")),
        DummyResponse(200, ["unexpected"]),
        httpx.ConnectError("refused"),
    ],
)
async def test_read_failures_raise_oracle_error(client_factory, response) -> None:
    client_factory(response)

    with pytest.raises(UsageOracleError):
        await build_source().read(PERIOD)


@pytest.mark.asyncio
async def test_increment_posts_operation_and_size(client_factory) -> None:
    client = client_factory(DummyResponse(200, {"success": True, "month": "2026-03"}))

    await build_source().increment(QuotaDimension.CLASS_A, size_bytes=2048, period=PERIOD)

    call = client.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://tracker.example.com/increment"
    assert call["json"] == {"operation": "classA", "fileSize": 2048}


@pytest.mark.asyncio
async def test_increment_requires_success_flag(client_factory) -> None:
    client_factory(DummyResponse(200, {"error": "Unauthorized"}))

    with pytest.raises(UsageOracleError):
        await build_source().increment(QuotaDimension.CLASS_B, period=PERIOD)


@pytest.mark.asyncio
async def test_storage_is_not_an_increment_dimension() -> None:
    with pytest.raises(ValueError):
        await build_source().increment(QuotaDimension.STORAGE, period=PERIOD)


@pytest.mark.asyncio
async def test_missing_settings_fail_before_network(client_factory) -> None:
    client = client_factory()
    source = CounterServiceSource(base_url=None, api_secret=None)

    with pytest.raises(UsageSourceMisconfigured) as excinfo:
        await source.read(PERIOD)

    assert excinfo.value.missing == ["USAGE_COUNTER_URL", "USAGE_COUNTER_SECRET"]
    assert client.calls == []
