"""SQLite-backed conversation store.

Identity columns (sender, subject, thread key) are written once at insert;
the only column sync ever updates afterwards is ``last_message_at``.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

from crm_inbox.domain.models import ConversationRecord
from crm_inbox.domain.types import Channel
from crm_inbox.timestamps import format_ts, utcnow


def _row_to_conversation(row: sqlite3.Row) -> ConversationRecord:
    return ConversationRecord.model_validate(dict(row))


class ConversationStore:
    """Persist and query conversations."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert(self, record: ConversationRecord) -> None:
        """Insert a new conversation.

        Raises:
            sqlite3.IntegrityError: If a conversation with the same thread
                identity already exists in the workspace.
        """
        try:
            self._conn.execute(
                """
                INSERT INTO conversations (
                    id, workspace_id, channel, provider, thread_key,
                    counterparty_key, account_id, sender_name, sender_email,
                    sender_linkedin_url, sender_attendee_id, subject,
                    assigned_to, custom_stage_id, stage_assigned_at, status,
                    last_message_at, preview, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.workspace_id,
                    record.channel.value,
                    record.provider.value,
                    record.thread_key,
                    record.counterparty_key,
                    record.account_id,
                    record.sender_name,
                    record.sender_email,
                    record.sender_linkedin_url,
                    record.sender_attendee_id,
                    record.subject,
                    record.assigned_to,
                    record.custom_stage_id,
                    format_ts(record.stage_assigned_at) if record.stage_assigned_at else None,
                    record.status,
                    format_ts(record.last_message_at) if record.last_message_at else None,
                    record.preview,
                    format_ts(record.created_at or utcnow()),
                ),
            )
        except sqlite3.IntegrityError:
            self._conn.rollback()
            raise
        self._conn.commit()

    def touch(self, conversation_id: str, message_at: datetime) -> None:
        """Advance ``last_message_at`` to *message_at*, never backwards."""
        ts = format_ts(message_at)
        self._conn.execute(
            """
            UPDATE conversations SET last_message_at = ?
            WHERE id = ? AND (last_message_at IS NULL OR last_message_at < ?)
            """,
            (ts, conversation_id, ts),
        )
        self._conn.commit()

    def delete(self, conversation_id: str) -> None:
        """Delete a conversation; messages and per-user state cascade."""
        self._conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, conversation_id: str) -> ConversationRecord | None:
        """Return the conversation with *conversation_id*, or ``None``."""
        row = self._conn.execute(
            "SELECT * FROM conversations WHERE id = ?",
            (conversation_id,),
        ).fetchone()
        return _row_to_conversation(row) if row is not None else None

    def find_by_thread(
        self,
        workspace_id: str,
        channel: Channel,
        thread_key: str,
        counterparty_email: str | None = None,
    ) -> ConversationRecord | None:
        """Find a conversation by thread key.

        When *counterparty_email* is given only a conversation whose
        ``sender_email`` matches it case-insensitively qualifies.
        """
        if counterparty_email:
            row = self._conn.execute(
                """
                SELECT * FROM conversations
                WHERE workspace_id = ? AND channel = ? AND thread_key = ?
                  AND lower(sender_email) = lower(?)
                ORDER BY created_at, id LIMIT 1
                """,
                (workspace_id, channel.value, thread_key, counterparty_email),
            ).fetchone()
        else:
            row = self._conn.execute(
                """
                SELECT * FROM conversations
                WHERE workspace_id = ? AND channel = ? AND thread_key = ?
                ORDER BY created_at, id LIMIT 1
                """,
                (workspace_id, channel.value, thread_key),
            ).fetchone()
        return _row_to_conversation(row) if row is not None else None

    def find_by_identity(
        self,
        workspace_id: str,
        channel: Channel,
        thread_key: str,
        counterparty_key: str,
    ) -> ConversationRecord | None:
        """Find the conversation occupying a unique thread-identity slot."""
        row = self._conn.execute(
            """
            SELECT * FROM conversations
            WHERE workspace_id = ? AND channel = ? AND thread_key = ? AND counterparty_key = ?
            """,
            (workspace_id, channel.value, thread_key, counterparty_key),
        ).fetchone()
        return _row_to_conversation(row) if row is not None else None

    def find_latest_by_email(self, workspace_id: str, email: str) -> ConversationRecord | None:
        """Return the most recently active email conversation with *email*."""
        row = self._conn.execute(
            """
            SELECT * FROM conversations
            WHERE workspace_id = ? AND channel = 'email'
              AND lower(trim(sender_email)) = ?
            ORDER BY last_message_at DESC LIMIT 1
            """,
            (workspace_id, email.strip().lower()),
        ).fetchone()
        return _row_to_conversation(row) if row is not None else None

    def find_latest_by_linkedin(
        self,
        workspace_id: str,
        linkedin_url: str | None,
        attendee_id: str | None,
    ) -> ConversationRecord | None:
        """Return the most recently active LinkedIn conversation with a person.

        Matches on profile URL when given, otherwise on attendee id.
        """
        if linkedin_url:
            column, value = "sender_linkedin_url", linkedin_url
        elif attendee_id:
            column, value = "sender_attendee_id", attendee_id
        else:
            return None
        row = self._conn.execute(
            f"""
            SELECT * FROM conversations
            WHERE workspace_id = ? AND channel = 'linkedin' AND {column} = ?
            ORDER BY last_message_at DESC LIMIT 1
            """,
            (workspace_id, value),
        ).fetchone()
        return _row_to_conversation(row) if row is not None else None

    def list_for_workspace(self, workspace_id: str) -> list[ConversationRecord]:
        """Return every conversation of a workspace, most recent first."""
        rows = self._conn.execute(
            """
            SELECT * FROM conversations WHERE workspace_id = ?
            ORDER BY last_message_at DESC
            """,
            (workspace_id,),
        ).fetchall()
        return [_row_to_conversation(row) for row in rows]
