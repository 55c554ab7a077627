"""Tests for Prometheus metrics endpoint and sync metrics."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from crm_inbox.observability.metrics import (
    MESSAGES_INGESTED,
    SYNC_RUNS,
    SYNCS_IN_PROGRESS,
    setup_metrics,
)


@pytest.fixture(autouse=True)
def _reset_metrics() -> Iterator[None]:
    """Reset gauge values between tests.

    Prometheus collectors are registered globally, so we reset values rather
    than re-creating them.  Counters cannot be reset; tests compare relative
    increments instead.
    """
    SYNCS_IN_PROGRESS.set(0)
    yield
    SYNCS_IN_PROGRESS.set(0)


@pytest.fixture()
def metrics_client() -> TestClient:
    """TestClient for a minimal app with Prometheus instrumentation."""
    app = FastAPI()

    @app.get("/hello")
    async def hello() -> dict[str, str]:
        return {"msg": "hello"}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready() -> dict[str, str]:
        return {"status": "ready"}

    setup_metrics(app)
    return TestClient(app)


def _metric_value(text: str, sample: str) -> float:
    """Extract the value of one sample line from Prometheus text output."""
    for line in text.splitlines():
        if line.startswith(sample + " "):
            return float(line.split()[-1])
    return 0.0


def test_metrics_endpoint_returns_prometheus_format(metrics_client: TestClient) -> None:
    """GET /metrics returns 200 with HTTP and sync metrics."""
    metrics_client.get("/hello")
    SYNC_RUNS.labels(provider="gmail", status="completed")
    MESSAGES_INGESTED.labels(channel="email")

    resp = metrics_client.get("/metrics")

    assert resp.status_code == 200
    body = resp.text
    assert "http_request" in body
    assert "inbox_sync_runs_total" in body
    assert "inbox_messages_ingested_total" in body
    assert "inbox_syncs_in_progress" in body


def test_excluded_handlers_not_in_metrics(metrics_client: TestClient) -> None:
    """/health and /ready do not appear as handler labels."""
    metrics_client.get("/health")
    metrics_client.get("/ready")
    body = metrics_client.get("/metrics").text
    lines = [
        line
        for line in body.splitlines()
        if "http_request_duration" in line and 'handler="' in line
    ]
    for line in lines:
        assert '/health"' not in line, f"/health found in metrics: {line}"
        assert '/ready"' not in line, f"/ready found in metrics: {line}"


def test_syncs_in_progress_gauge(metrics_client: TestClient) -> None:
    """SYNCS_IN_PROGRESS is reflected in /metrics output."""
    SYNCS_IN_PROGRESS.inc()
    SYNCS_IN_PROGRESS.inc()
    assert "inbox_syncs_in_progress 2.0" in metrics_client.get("/metrics").text

    SYNCS_IN_PROGRESS.dec()
    assert "inbox_syncs_in_progress 1.0" in metrics_client.get("/metrics").text


def test_sync_runs_counter_increments(metrics_client: TestClient) -> None:
    """SYNC_RUNS increments per provider and status."""
    sample = 'inbox_sync_runs_total{provider="outlook",status="error"}'
    initial = _metric_value(metrics_client.get("/metrics").text, sample)

    SYNC_RUNS.labels(provider="outlook", status="error").inc()

    assert _metric_value(metrics_client.get("/metrics").text, sample) == initial + 1.0
