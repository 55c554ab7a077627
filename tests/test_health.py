"""Tests for /health and /ready endpoints.

Uses FastAPI TestClient with in-memory SQLite connections to verify
liveness and readiness probes without external dependencies.
"""

from __future__ import annotations

import sqlite3
from typing import Any
from unittest.mock import MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from crm_inbox.health import register_health_routes

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_app(services: dict[str, Any] | None = None) -> FastAPI:
    """Create a minimal FastAPI app with health routes and given services."""
    app = FastAPI()
    app.state.services = services or {}
    register_health_routes(app)
    return app


# ---------------------------------------------------------------------------
# /health (liveness)
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    """GET /health liveness probe."""

    def test_health_returns_200(self) -> None:
        response = TestClient(_make_app()).get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


# ---------------------------------------------------------------------------
# /ready (readiness)
# ---------------------------------------------------------------------------


class TestReadyEndpoint:
    """GET /ready readiness probe."""

    def test_ready_when_db_and_queue_ok(self) -> None:
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        app = _make_app({"inbox_conn": conn, "task_queue": MagicMock()})

        response = TestClient(app).get("/ready")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "checks": {"inbox_db": "ok", "sync_queue": "ok"},
        }
        conn.close()

    def test_not_ready_without_services(self) -> None:
        response = TestClient(_make_app()).get("/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "not_ready"
        assert body["checks"] == {"inbox_db": "fail", "sync_queue": "fail"}

    def test_not_ready_when_db_closed(self) -> None:
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        conn.close()
        app = _make_app({"inbox_conn": conn, "task_queue": MagicMock()})

        response = TestClient(app).get("/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["inbox_db"] == "fail"
        assert response.json()["checks"]["sync_queue"] == "ok"
