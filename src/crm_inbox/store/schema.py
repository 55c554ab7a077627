"""SQLite schema for the inbox store.

Creates the connected account, conversation, message, per-user state and
sync status tables.  All timestamps are UTC ``%Y-%m-%dT%H:%M:%SZ`` strings.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path


def init_inbox_db(db_path: Path | str) -> sqlite3.Connection:
    """Open the inbox database and create every table if missing.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection with ``sqlite3.Row`` rows and foreign
        keys enforced.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    if str(db_path) != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    init_inbox_tables(conn)
    return conn


def init_inbox_tables(conn: sqlite3.Connection) -> None:
    """Create the inbox tables and indexes on an existing connection.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS connected_accounts (
            id TEXT PRIMARY KEY,
            workspace_id TEXT NOT NULL,
            user_id TEXT,
            channel TEXT NOT NULL,
            provider TEXT NOT NULL,
            account_email TEXT NOT NULL DEFAULT '',
            access_token TEXT NOT NULL DEFAULT '',
            refresh_token TEXT,
            token_expires_at TEXT,
            unipile_account_id TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            last_synced_at TEXT,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS conversations (
            id TEXT PRIMARY KEY,
            workspace_id TEXT NOT NULL,
            channel TEXT NOT NULL,
            provider TEXT NOT NULL,
            thread_key TEXT NOT NULL,
            counterparty_key TEXT NOT NULL DEFAULT '',
            account_id TEXT,
            sender_name TEXT NOT NULL DEFAULT '',
            sender_email TEXT,
            sender_linkedin_url TEXT,
            sender_attendee_id TEXT,
            subject TEXT,
            assigned_to TEXT,
            custom_stage_id TEXT,
            stage_assigned_at TEXT,
            status TEXT NOT NULL DEFAULT 'new',
            is_read INTEGER NOT NULL DEFAULT 0,
            is_favorite INTEGER NOT NULL DEFAULT 0,
            last_message_at TEXT,
            preview TEXT,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        )
    """)
    conn.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_conv_thread_identity
        ON conversations (workspace_id, channel, thread_key, counterparty_key)
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_conv_sender_email "
        "ON conversations (workspace_id, lower(sender_email))"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_conv_last_message ON conversations (last_message_at)"
    )

    conn.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            id TEXT PRIMARY KEY,
            conversation_id TEXT NOT NULL
                REFERENCES conversations (id) ON DELETE CASCADE,
            workspace_id TEXT NOT NULL,
            channel TEXT NOT NULL,
            provider_message_id TEXT NOT NULL,
            provider_thread_id TEXT,
            sender_name TEXT,
            sender_email TEXT,
            sender_attendee_id TEXT,
            content TEXT NOT NULL DEFAULT '',
            html_body TEXT,
            text_body TEXT,
            attachments_json TEXT NOT NULL DEFAULT '[]',
            body_fetched_at TEXT,
            body_fetch_error TEXT,
            is_from_lead INTEGER NOT NULL,
            provider_folder TEXT,
            created_at TEXT NOT NULL,
            ingested_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        )
    """)
    conn.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_msg_provider_id
        ON messages (workspace_id, provider_message_id)
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_msg_conversation ON messages (conversation_id, created_at)"
    )

    conn.execute("""
        CREATE TABLE IF NOT EXISTS conversation_user_state (
            conversation_id TEXT NOT NULL
                REFERENCES conversations (id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            is_read INTEGER NOT NULL DEFAULT 0,
            is_favorite INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            PRIMARY KEY (conversation_id, user_id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sync_status (
            workspace_id TEXT NOT NULL,
            account_id TEXT NOT NULL,
            status TEXT NOT NULL,
            last_synced_at TEXT,
            sync_error TEXT,
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            PRIMARY KEY (workspace_id, account_id)
        )
    """)

    conn.commit()
