"""
Unit tests for services.dashboard.api module.

Tests:
- /health
- /api/v1/snapshot
- /api/v1/peers/{peer_id}
- /api/v1/events and /api/v1/events/recent
- Request middleware (error boundary, request counters)
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from support import PEER_INFO, FakeGatewayFactory, make_notification, rpc_results

from nodewatch.core.metrics import MetricsConfig
from nodewatch.models.constants import Section
from nodewatch.models.snapshot import MempoolSummary
from nodewatch.services.dashboard import Dashboard, DashboardConfig
from nodewatch.services.dashboard.api import build_app
from nodewatch.utils.host import HostSafetyValidator


def _build_dashboard(config: DashboardConfig | None = None) -> Dashboard:
    dashboard = Dashboard(
        config or DashboardConfig(),
        validator=HostSafetyValidator(),
        gateway_factory=FakeGatewayFactory(),  # type: ignore[arg-type]
    )
    dashboard._snapshot.set_section(
        Section.MEMPOOL, MempoolSummary.from_rpc(rpc_results()["getmempoolinfo"])
    )
    dashboard._snapshot.upsert_peers(PEER_INFO)
    return dashboard


@pytest.fixture
def api_dashboard() -> Dashboard:
    return _build_dashboard()


@pytest.fixture
def client(api_dashboard: Dashboard) -> TestClient:
    return TestClient(build_app(api_dashboard))


class TestHealth:
    """GET /health."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "state": "idle", "connectivity": "unknown"}


class TestSnapshot:
    """GET /api/v1/snapshot."""

    def test_snapshot(self, client: TestClient) -> None:
        response = client.get("/api/v1/snapshot")

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["mempool"]["transactions"] == 1500
        assert body["data"]["chain"] is None
        assert [p["id"] for p in body["data"]["peers"]] == [1, 2]
        assert body["meta"]["state"] == "idle"
        assert body["meta"]["generation"] == 0

    def test_peer_details_not_in_snapshot(self, client: TestClient) -> None:
        peers = client.get("/api/v1/snapshot").json()["data"]["peers"]
        assert "connection_type" in peers[0]
        assert "pingtime" not in peers[0]


class TestPeers:
    """GET /api/v1/peers/{peer_id}."""

    def test_known_peer(self, client: TestClient) -> None:
        response = client.get("/api/v1/peers/1")
        assert response.status_code == 200
        assert response.json()["data"]["pingtime"] == 0.042

    def test_unknown_peer(self, client: TestClient) -> None:
        response = client.get("/api/v1/peers/99")
        assert response.status_code == 404
        assert response.json() == {"error": "peer not found: 99"}

    def test_invalid_id(self, client: TestClient) -> None:
        assert client.get("/api/v1/peers/abc").status_code == 422


class TestEvents:
    """GET /api/v1/events and /api/v1/events/recent."""

    def test_read_since(self, api_dashboard: Dashboard, client: TestClient) -> None:
        api_dashboard.buffer.publish(make_notification(topic="hashblock", sequence=1))
        api_dashboard.buffer.publish(make_notification(topic="hashtx", sequence=2))

        body = client.get("/api/v1/events", params={"since": 1}).json()

        assert body["cursor"] == 2
        assert body["truncated"] is False
        assert body["connected"] is False
        assert body["buffer_limit"] == 5000
        assert [m["topic"] for m in body["messages"]] == ["hashtx"]
        assert body["messages"][0]["event_hash"] == "11" * 32

    def test_disconnected_does_not_wait(self, client: TestClient) -> None:
        response = client.get("/api/v1/events", params={"since": 0, "wait_ms": 120_000})
        assert response.status_code == 200
        assert response.json()["messages"] == []

    def test_negative_cursor_rejected(self, client: TestClient) -> None:
        assert client.get("/api/v1/events", params={"since": -1}).status_code == 422

    def test_recent(self, api_dashboard: Dashboard, client: TestClient) -> None:
        assert client.get("/api/v1/events/recent").json() == {"data": []}

        api_dashboard.buffer.publish(make_notification(topic="hashtx"))
        api_dashboard.handle_read(api_dashboard.buffer._collect(0))

        data = client.get("/api/v1/events/recent").json()["data"]
        assert [r["cursor"] for r in data] == [1]


class TestMiddleware:
    """Request error boundary and counters."""

    def test_unhandled_error_returns_500(
        self, api_dashboard: Dashboard, client: TestClient
    ) -> None:
        with patch.object(api_dashboard, "status", side_effect=RuntimeError("boom")):
            response = client.get("/api/v1/snapshot")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_request_counters(self) -> None:
        dashboard = _build_dashboard(DashboardConfig(metrics=MetricsConfig(enabled=True)))
        client = TestClient(build_app(dashboard))

        def sample(name: str) -> float:
            value = REGISTRY.get_sample_value(
                "nodewatch_service_counter_total", {"service": "dashboard", "name": name}
            )
            return value or 0.0

        total, failed = sample("api_requests_total"), sample("api_requests_failed")

        client.get("/health")
        client.get("/api/v1/peers/99")

        assert sample("api_requests_total") == total + 2
        assert sample("api_requests_failed") == failed + 1
