"""Health and readiness endpoints for container orchestration.

- ``GET /health`` -- Liveness probe.  Returns 200 if the process is alive.
- ``GET /ready``  -- Readiness probe.  Returns 200 only when the inbox DB
  answers a query **and** the sync task queue is initialized.  Returns 503
  with per-check details otherwise.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` endpoints on *app*.

    Args:
        app: The FastAPI application instance.
    """

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe -- always returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe -- checks the inbox DB and the sync task queue."""
        services: dict[str, Any] = request.app.state.services
        checks: dict[str, str] = {}

        inbox_conn = services.get("inbox_conn")
        if inbox_conn is not None:
            try:
                await asyncio.to_thread(inbox_conn.execute, "SELECT 1")
                checks["inbox_db"] = "ok"
            except sqlite3.Error:
                checks["inbox_db"] = "fail"
        else:
            checks["inbox_db"] = "fail"

        checks["sync_queue"] = "ok" if services.get("task_queue") is not None else "fail"

        all_ok = all(v == "ok" for v in checks.values())
        status = "ready" if all_ok else "not_ready"
        code = 200 if all_ok else 503

        return JSONResponse(content={"status": status, "checks": checks}, status_code=code)
