"""Per-user read and favorite flags on conversations.

Reads and writes go to ``conversation_user_state``.  When that table is
unavailable (older databases) they fall back to the legacy
per-conversation ``is_read`` / ``is_favorite`` columns.
"""

from __future__ import annotations

import sqlite3

import structlog
from pydantic import BaseModel

from crm_inbox.timestamps import format_ts, utcnow

logger = structlog.get_logger()


class UserState(BaseModel):
    """Read/favorite flags of one user on one conversation."""

    is_read: bool = False
    is_favorite: bool = False


class UserStateStore:
    """Persist per-user conversation flags with a legacy-column fallback."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, conversation_id: str, user_id: str) -> UserState:
        """Return the flags of *user_id* on a conversation (defaults when unset)."""
        try:
            row = self._conn.execute(
                """
                SELECT is_read, is_favorite FROM conversation_user_state
                WHERE conversation_id = ? AND user_id = ?
                """,
                (conversation_id, user_id),
            ).fetchone()
        except sqlite3.OperationalError:
            logger.warning("user_state_table_unavailable", conversation_id=conversation_id)
            row = self._conn.execute(
                "SELECT is_read, is_favorite FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        if row is None:
            return UserState()
        return UserState(is_read=bool(row["is_read"]), is_favorite=bool(row["is_favorite"]))

    def set(
        self,
        conversation_id: str,
        user_id: str,
        is_read: bool | None = None,
        is_favorite: bool | None = None,
    ) -> UserState:
        """Update the flags of *user_id*; ``None`` leaves a flag unchanged.

        Returns:
            The flags after the update.
        """
        current = self.get(conversation_id, user_id)
        updated = UserState(
            is_read=current.is_read if is_read is None else is_read,
            is_favorite=current.is_favorite if is_favorite is None else is_favorite,
        )
        try:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO conversation_user_state (
                    conversation_id, user_id, is_read, is_favorite, updated_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    user_id,
                    int(updated.is_read),
                    int(updated.is_favorite),
                    format_ts(utcnow()),
                ),
            )
        except sqlite3.OperationalError:
            logger.warning("user_state_table_unavailable", conversation_id=conversation_id)
            self._conn.execute(
                "UPDATE conversations SET is_read = ?, is_favorite = ? WHERE id = ?",
                (int(updated.is_read), int(updated.is_favorite), conversation_id),
            )
        self._conn.commit()
        return updated
