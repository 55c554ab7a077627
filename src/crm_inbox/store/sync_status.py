"""SQLite-backed sync status store, one row per (workspace, account)."""

from __future__ import annotations

import sqlite3
from datetime import datetime

from pydantic import BaseModel

from crm_inbox.domain.models import SyncStatusRecord
from crm_inbox.domain.types import SyncState
from crm_inbox.timestamps import format_ts, utcnow


class SyncProgress(BaseModel):
    """Counters of a running sync, stored as JSON in ``sync_error``."""

    folder: str = ""
    pages: int = 0
    fetched: int = 0
    conversations_created: int = 0
    messages_created: int = 0
    skipped: int = 0
    errors: int = 0


class SyncStatusStore:
    """Record the state of the latest sync run of each account."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def upsert(
        self,
        workspace_id: str,
        account_id: str,
        status: SyncState,
        sync_error: str | None = None,
        synced_at: datetime | None = None,
    ) -> None:
        """Write the status row.

        A ``COMPLETED`` status stamps ``last_synced_at`` (with *synced_at* or
        now) and clears ``sync_error``.  Other statuses keep the previous
        ``last_synced_at``.
        """
        now = format_ts(utcnow())
        if status == SyncState.COMPLETED:
            last_synced = format_ts(synced_at) if synced_at else now
            sync_error = None
        else:
            last_synced = None
        self._conn.execute(
            """
            INSERT INTO sync_status (
                workspace_id, account_id, status, last_synced_at, sync_error, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (workspace_id, account_id) DO UPDATE SET
                status = excluded.status,
                last_synced_at = COALESCE(excluded.last_synced_at, sync_status.last_synced_at),
                sync_error = excluded.sync_error,
                updated_at = excluded.updated_at
            """,
            (workspace_id, account_id, status.value, last_synced, sync_error, now),
        )
        self._conn.commit()

    def write_progress(self, workspace_id: str, account_id: str, progress: SyncProgress) -> None:
        """Store running counters on an ``in_progress`` row."""
        self.upsert(
            workspace_id,
            account_id,
            SyncState.IN_PROGRESS,
            sync_error=progress.model_dump_json(),
        )

    def get(self, workspace_id: str, account_id: str) -> SyncStatusRecord | None:
        """Return the status row of an account, or ``None`` if it never synced."""
        row = self._conn.execute(
            "SELECT * FROM sync_status WHERE workspace_id = ? AND account_id = ?",
            (workspace_id, account_id),
        ).fetchone()
        return SyncStatusRecord.model_validate(dict(row)) if row is not None else None
