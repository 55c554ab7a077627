"""Prometheus metrics instrumentation for the inbox service.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus the sync metrics below.
- ``SYNC_RUNS``: Counter of finished sync runs by provider and final status.
- ``MESSAGES_INGESTED``: Counter of newly stored messages by channel.
- ``SYNCS_IN_PROGRESS``: Gauge of account syncs currently running.
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

SYNC_RUNS: Counter = Counter(
    "inbox_sync_runs_total",
    "Finished account sync runs",
    ["provider", "status"],
)

MESSAGES_INGESTED: Counter = Counter(
    "inbox_messages_ingested_total",
    "Messages newly written to the store",
    ["channel"],
)

SYNCS_IN_PROGRESS: Gauge = Gauge(
    "inbox_syncs_in_progress",
    "Account syncs currently running",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Health, readiness, metrics and the event stream are excluded from
    instrumentation.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics", "/events"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
