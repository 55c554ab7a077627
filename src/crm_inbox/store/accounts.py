"""SQLite-backed store of connected accounts and their sync watermarks."""

from __future__ import annotations

import sqlite3
from datetime import datetime

from crm_inbox.domain.models import ConnectedAccount
from crm_inbox.timestamps import format_ts


def _row_to_account(row: sqlite3.Row) -> ConnectedAccount:
    data = dict(row)
    data.pop("created_at", None)
    return ConnectedAccount.model_validate(data)


class AccountStore:
    """Persist and look up connected accounts.

    Uses parameterized queries exclusively and commits after every write.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def save(self, account: ConnectedAccount) -> None:
        """Insert or replace an account row.

        Args:
            account: The account to persist.
        """
        refresh = account.refresh_token.get_secret_value() if account.refresh_token else None
        self._conn.execute(
            """
            INSERT OR REPLACE INTO connected_accounts (
                id, workspace_id, user_id, channel, provider, account_email,
                access_token, refresh_token, token_expires_at,
                unipile_account_id, is_active, last_synced_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                account.id,
                account.workspace_id,
                account.user_id,
                account.channel.value,
                account.provider.value,
                account.account_email,
                account.access_token.get_secret_value(),
                refresh,
                format_ts(account.token_expires_at) if account.token_expires_at else None,
                account.unipile_account_id,
                int(account.is_active),
                format_ts(account.last_synced_at) if account.last_synced_at else None,
            ),
        )
        self._conn.commit()

    def update_tokens(
        self,
        account_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> None:
        """Persist refreshed OAuth tokens.

        A ``None`` *refresh_token* keeps the stored one.
        """
        self._conn.execute(
            """
            UPDATE connected_accounts
            SET access_token = ?,
                refresh_token = COALESCE(?, refresh_token),
                token_expires_at = ?
            WHERE id = ?
            """,
            (
                access_token,
                refresh_token,
                format_ts(expires_at) if expires_at else None,
                account_id,
            ),
        )
        self._conn.commit()

    def set_watermark(self, account_id: str, synced_at: datetime) -> None:
        """Advance the account's ``last_synced_at`` watermark."""
        self._conn.execute(
            "UPDATE connected_accounts SET last_synced_at = ? WHERE id = ?",
            (format_ts(synced_at), account_id),
        )
        self._conn.commit()

    def set_active(self, account_id: str, active: bool) -> None:
        """Activate or deactivate an account."""
        self._conn.execute(
            "UPDATE connected_accounts SET is_active = ? WHERE id = ?",
            (int(active), account_id),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, account_id: str) -> ConnectedAccount | None:
        """Return the account with *account_id*, or ``None``."""
        row = self._conn.execute(
            "SELECT * FROM connected_accounts WHERE id = ?",
            (account_id,),
        ).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_unipile_id(self, unipile_account_id: str) -> ConnectedAccount | None:
        """Return the LinkedIn account registered under a Unipile account id."""
        row = self._conn.execute(
            "SELECT * FROM connected_accounts WHERE unipile_account_id = ? LIMIT 1",
            (unipile_account_id,),
        ).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_active(self) -> list[ConnectedAccount]:
        """Return every active account, oldest first."""
        rows = self._conn.execute(
            "SELECT * FROM connected_accounts WHERE is_active = 1 ORDER BY created_at, id"
        ).fetchall()
        return [_row_to_account(row) for row in rows]
