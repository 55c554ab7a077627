"""SQLite-backed message store.

Messages are append-only for sync: ``(workspace_id, provider_message_id)``
is unique and a re-synced message is never rewritten.  Only the lazy body
columns are filled in after insert.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime

from crm_inbox.domain.models import MessageBody, MessageRecord
from crm_inbox.timestamps import format_ts, utcnow


def _row_to_message(row: sqlite3.Row) -> MessageRecord:
    data = dict(row)
    data["attachments"] = json.loads(data.pop("attachments_json") or "[]")
    data.pop("ingested_at", None)
    return MessageRecord.model_validate(data)


class MessageStore:
    """Persist and query messages."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert(self, record: MessageRecord) -> None:
        """Insert a new message.

        Raises:
            sqlite3.IntegrityError: If the provider message id is already
                stored for the workspace.
        """
        try:
            self._conn.execute(
                """
                INSERT INTO messages (
                    id, conversation_id, workspace_id, channel,
                    provider_message_id, provider_thread_id, sender_name,
                    sender_email, sender_attendee_id, content, attachments_json,
                    is_from_lead, provider_folder, created_at, ingested_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.conversation_id,
                    record.workspace_id,
                    record.channel.value,
                    record.provider_message_id,
                    record.provider_thread_id,
                    record.sender_name,
                    record.sender_email,
                    record.sender_attendee_id,
                    record.content,
                    json.dumps([a.model_dump() for a in record.attachments]),
                    int(record.is_from_lead),
                    record.provider_folder,
                    format_ts(record.created_at),
                    format_ts(utcnow()),
                ),
            )
        except sqlite3.IntegrityError:
            self._conn.rollback()
            raise
        self._conn.commit()

    def save_body(self, message_id: str, body: MessageBody, fetched_at: datetime) -> None:
        """Store a fetched body and stamp ``body_fetched_at``."""
        self._conn.execute(
            """
            UPDATE messages
            SET html_body = ?, text_body = ?, attachments_json = ?,
                body_fetched_at = ?, body_fetch_error = NULL
            WHERE id = ?
            """,
            (
                body.html_body,
                body.text_body,
                json.dumps([a.model_dump() for a in body.attachments]),
                format_ts(fetched_at),
                message_id,
            ),
        )
        self._conn.commit()

    def mark_body_failed(self, message_id: str, error: str, fetched_at: datetime) -> None:
        """Stamp a failed body fetch so it is not retried on every view."""
        self._conn.execute(
            "UPDATE messages SET body_fetched_at = ?, body_fetch_error = ? WHERE id = ?",
            (format_ts(fetched_at), error, message_id),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, message_id: str) -> MessageRecord | None:
        """Return the message with *message_id*, or ``None``."""
        row = self._conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return _row_to_message(row) if row is not None else None

    def get_by_provider_id(
        self, workspace_id: str, provider_message_id: str
    ) -> MessageRecord | None:
        """Return the message stored under a provider message id, or ``None``."""
        row = self._conn.execute(
            "SELECT * FROM messages WHERE workspace_id = ? AND provider_message_id = ?",
            (workspace_id, provider_message_id),
        ).fetchone()
        return _row_to_message(row) if row is not None else None

    def list_for_conversation(self, conversation_id: str) -> list[MessageRecord]:
        """Return the messages of a conversation, oldest first."""
        rows = self._conn.execute(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at, id",
            (conversation_id,),
        ).fetchall()
        return [_row_to_message(row) for row in rows]

    def latest_preview(self, conversation_id: str) -> str | None:
        """Return the snippet of the newest message in a conversation."""
        row = self._conn.execute(
            """
            SELECT content FROM messages WHERE conversation_id = ?
            ORDER BY created_at DESC, id DESC LIMIT 1
            """,
            (conversation_id,),
        ).fetchone()
        return row["content"] if row is not None else None
