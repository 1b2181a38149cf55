from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from freebucket import __version__
from freebucket.tracker.tracker_main import create_tracker_app

AUTH = {"Authorization": "Bearer s3cret"}


class MutableClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def client(tmp_path: Path, clock: MutableClock) -> TestClient:
    app = create_tracker_app(f"sqlite:///{tmp_path / 'tracker.db'}", "s3cret", clock=clock)
    return TestClient(app, raise_server_exceptions=False)


def test_health_reports_new_month_once(client: TestClient) -> None:
    first = client.get("/health").json()
    second = client.get("/health").json()

    assert first["status"] == "ok"
    assert first["month"] == "2026-03"
    assert first["isNewMonth"] is True
    assert first["version"] == __version__
    assert first["timestamp"] == "2026-03-14T12:00:00+00:00"
    assert second["isNewMonth"] is False


def test_usage_starts_at_zero(client: TestClient) -> None:
    body = client.get("/usage").json()

    assert body["storageBytes"] == 0
    assert body["classAOperations"] == 0
    assert body["classBOperations"] == 0
    assert body["month"] == "2026-03"
    assert body["lastUpdated"] == "2026-03-14T12:00:00+00:00"


def test_increment_class_a_adds_storage(client: TestClient) -> None:
    response = client.post("/increment", json={"operation": "classA", "fileSize": 2048}, headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["operation"] == "classA"
    assert body["fileSize"] == 2048
    assert body["month"] == "2026-03"
    assert body["usage"]["storageBytes"] == 2048
    assert body["usage"]["classAOperations"] == 1


def test_increment_class_b_leaves_storage(client: TestClient) -> None:
    client.post("/increment", json={"operation": "classB", "fileSize": 999}, headers=AUTH)

    usage = client.get("/usage").json()
    assert usage["classBOperations"] == 1
    assert usage["storageBytes"] == 0


def test_repeated_increments_accumulate(client: TestClient) -> None:
    for _ in range(3):
        client.post("/increment", json={"operation": "classA", "fileSize": 10}, headers=AUTH)

    usage = client.get("/usage").json()
    assert usage["classAOperations"] == 3
    assert usage["storageBytes"] == 30


@pytest.mark.parametrize(
    "payload",
    [{"operation": "classC"}, {"fileSize": 10}, {"operation": "classA", "fileSize": -1}],
)
def test_invalid_operation_is_rejected_before_auth(client: TestClient, payload) -> None:
    response = client.post("/increment", json=payload)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid operation. Must be 'classA' or 'classB'"}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "s3cret"}])
def test_increment_requires_bearer_secret(client: TestClient, headers) -> None:
    response = client.post("/increment", json={"operation": "classA"}, headers=headers)

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert client.get("/usage").json()["classAOperations"] == 0


def test_reset_zeroes_counters(client: TestClient) -> None:
    client.post("/increment", json={"operation": "classA", "fileSize": 10}, headers=AUTH)

    assert client.post("/reset").status_code == 401
    response = client.post("/reset", headers=AUTH)

    assert response.json() == {
        "success": True,
        "message": "Usage and storage reset",
        "month": "2026-03",
    }
    assert client.get("/usage").json()["storageBytes"] == 0


def test_new_month_starts_from_zero(client: TestClient, clock: MutableClock) -> None:
    client.post("/increment", json={"operation": "classA", "fileSize": 10}, headers=AUTH)
    clock.moment = datetime(2026, 4, 1, 0, 0, 1, tzinfo=timezone.utc)

    health = client.get("/health").json()
    usage = client.get("/usage").json()

    assert health["month"] == "2026-04"
    assert health["isNewMonth"] is True
    assert usage["classAOperations"] == 0
    assert usage["storageBytes"] == 0


@pytest.mark.parametrize(("method", "path"), [("GET", "/missing"), ("GET", "/increment"), ("DELETE", "/usage")])
def test_unknown_routes_list_endpoints(client: TestClient, method: str, path: str) -> None:
    response = client.request(method, path)

    assert response.status_code == 404
    assert response.json() == {
        "error": "Not Found",
        "availableEndpoints": ["/health", "/usage", "/increment", "/reset"],
    }


def test_missing_secret_rejects_writes(tmp_path: Path, clock: MutableClock, monkeypatch) -> None:
    monkeypatch.delenv("TRACKER_API_SECRET", raising=False)
    app = create_tracker_app(f"sqlite:///{tmp_path / 'open.db'}", clock=clock)
    client = TestClient(app)

    response = client.post("/increment", json={"operation": "classA"}, headers={"Authorization": "Bearer "})

    assert response.status_code == 401
