"""Tests for the status API (health, status, metrics)."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from k0watch import __version__
from k0watch.api.app import create_app


def _status(name: str, stopped: bool = False, **extra: Any) -> dict[str, Any]:
    status: dict[str, Any] = {
        "name": name,
        "stopped": stopped,
        "subscriptions": 1,
        "sessions_active": 2,
        "session_states": {"watching": 2},
        "dropped": 0,
        "breakers": {f"{name}/Event/team-a": "closed"},
    }
    status.update(extra)
    return status


def _manager(status: dict[str, Any]) -> MagicMock:
    manager = MagicMock()
    manager.status.return_value = status
    return manager


def _client(stopped: bool = False) -> TestClient:
    app = create_app(
        graph=_manager(_status("graph", stopped=stopped)),
        events=_manager(_status("events", api="events.events.k8s.io/v1")),
        podlogs=_manager(_status("podlogs")),
    )
    return TestClient(app, raise_server_exceptions=False)


# ---------------------------------------------------------------------------
# /api/v1/health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_ok_while_running(self) -> None:
        resp = _client().get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": __version__}

    def test_stopping_once_a_manager_stopped(self) -> None:
        resp = _client(stopped=True).get("/api/v1/health")
        assert resp.json()["status"] == "stopping"


# ---------------------------------------------------------------------------
# /api/v1/status
# ---------------------------------------------------------------------------


class TestStatus:
    def test_lists_every_manager(self) -> None:
        body = _client().get("/api/v1/status").json()
        assert body["version"] == __version__
        assert [m["name"] for m in body["managers"]] == ["graph", "events", "podlogs"]
        events = body["managers"][1]
        assert events["api"] == "events.events.k8s.io/v1"
        assert events["session_states"] == {"watching": 2}
        assert body["managers"][0]["api"] is None

    def test_manager_failure_returns_generic_error(self) -> None:
        broken = MagicMock()
        broken.status.side_effect = RuntimeError("lock poisoned")
        app = create_app(graph=broken, events=None, podlogs=None)
        resp = TestClient(app, raise_server_exceptions=False).get("/api/v1/status")
        assert resp.status_code == 500
        assert resp.json()["error"] == "INTERNAL_ERROR"
        assert "lock poisoned" not in resp.text


# ---------------------------------------------------------------------------
# /metrics
# ---------------------------------------------------------------------------


class TestMetrics:
    def test_prometheus_exposition(self) -> None:
        resp = _client().get("/metrics")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert "k0watch_sessions_active" in resp.text
