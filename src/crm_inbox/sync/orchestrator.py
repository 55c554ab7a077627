"""Account sync: page through every folder and ingest each message.

One run walks the provider's folders sequentially.  Failures are contained
at the narrowest level that makes sense: a bad message is skipped, a
failing folder is abandoned, and only an account that needs reconnecting
aborts the run.  The status row records the outcome either way.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from crm_inbox.auth.tokens import TokenRefresher
from crm_inbox.domain.errors import AuthExpiredError, ProviderError, ReconnectRequiredError
from crm_inbox.domain.models import (
    ConnectedAccount,
    IngestContext,
    LinkedInMessageMeta,
    SyncWindow,
)
from crm_inbox.domain.types import Channel, Folder, SyncMode, SyncState
from crm_inbox.events.broadcaster import (
    LINKEDIN_MESSAGE_EVENT,
    EventBroadcaster,
    linkedin_message_payload,
)
from crm_inbox.observability.metrics import MESSAGES_INGESTED, SYNC_RUNS, SYNCS_IN_PROGRESS
from crm_inbox.providers.base import ProviderClient
from crm_inbox.state_machine import SyncEvent, SyncStateMachine
from crm_inbox.store.accounts import AccountStore
from crm_inbox.store.sync_status import SyncProgress, SyncStatusStore
from crm_inbox.sync.bodies import ClientFactory
from crm_inbox.sync.writer import IdempotentWriter
from crm_inbox.timestamps import utcnow

logger = structlog.get_logger()

T = TypeVar("T")


class SyncOutcome(BaseModel):
    """Result of one account sync run."""

    account_id: str
    status: SyncState
    mode: SyncMode
    progress: SyncProgress
    error: str | None = None
    failed_folders: list[str] = []


class _AccountRun:
    """Mutable state of a single run."""

    def __init__(
        self,
        account: ConnectedAccount,
        client: ProviderClient,
        mode: SyncMode,
    ) -> None:
        self.account = account
        self.client = client
        self.mode = mode
        self.ctx = IngestContext(workspace_id=account.workspace_id, account_id=account.id)
        self.progress = SyncProgress()
        self.refreshed = False
        self.failed_folders: list[str] = []
        self.log = logger.bind(account_id=account.id, workspace_id=account.workspace_id)


def _raw_message_id(raw: dict[str, Any]) -> str | None:
    if raw.get("id"):
        return str(raw["id"])
    message = raw.get("message")
    return str(message.get("id")) if isinstance(message, dict) else None


class SyncOrchestrator:
    """Run initial and incremental syncs of connected accounts.

    Args:
        accounts: Connected account store (tokens, watermark).
        sync_status: Sync status store.
        writer: Idempotent message writer.
        token_refresher: Refreshes expired OAuth tokens.
        client_factory: Builds a fresh provider client per run.
        broadcaster: Receives ``linkedin_message`` events; optional.
        page_ceiling: Maximum pages read per folder.
        email_initial_days: Initial window for email accounts.
        linkedin_initial_days: Initial window for LinkedIn accounts.
    """

    def __init__(
        self,
        *,
        accounts: AccountStore,
        sync_status: SyncStatusStore,
        writer: IdempotentWriter,
        token_refresher: TokenRefresher,
        client_factory: ClientFactory,
        broadcaster: EventBroadcaster | None = None,
        page_ceiling: int = 100,
        email_initial_days: int = 90,
        linkedin_initial_days: int = 30,
    ) -> None:
        self._accounts = accounts
        self._sync_status = sync_status
        self._writer = writer
        self._token_refresher = token_refresher
        self._client_factory = client_factory
        self._broadcaster = broadcaster
        self._page_ceiling = page_ceiling
        self._email_initial_days = email_initial_days
        self._linkedin_initial_days = linkedin_initial_days

    def window_for(self, account: ConnectedAccount) -> tuple[SyncMode, SyncWindow]:
        """Choose the sync mode and window from the account watermark."""
        if account.last_synced_at is not None:
            return SyncMode.INCREMENTAL, SyncWindow(since=account.last_synced_at)
        days = (
            self._linkedin_initial_days
            if account.channel == Channel.LINKEDIN
            else self._email_initial_days
        )
        return SyncMode.INITIAL, SyncWindow(days_back=days)

    async def run(self, account: ConnectedAccount) -> SyncOutcome:
        """Sync every folder of *account*.

        Args:
            account: The account to sync.

        Returns:
            The outcome; ``status`` is ``COMPLETED`` or ``ERROR``.

        Raises:
            Exception: Any unexpected error, after recording ``ERROR``.
        """
        machine = SyncStateMachine()
        mode, window = self.window_for(account)
        run = _AccountRun(account, self._client_factory(account), mode)

        machine.trigger(SyncEvent.START)
        self._sync_status.write_progress(account.workspace_id, account.id, run.progress)
        run.log.info("sync_started", mode=mode.value, provider=account.provider.value)
        SYNCS_IN_PROGRESS.inc()
        try:
            for folder in run.client.folders:
                run.progress.folder = folder.value
                try:
                    await self._sync_folder(run, folder, window)
                except ProviderError as exc:
                    run.progress.errors += 1
                    run.failed_folders.append(folder.value)
                    run.log.warning(
                        "folder_sync_failed",
                        folder=folder.value,
                        status=exc.status,
                        error=exc.message,
                    )
        except ReconnectRequiredError as exc:
            return self._fail(machine, run, str(exc))
        except Exception as exc:
            self._fail(machine, run, str(exc) or type(exc).__name__)
            raise
        finally:
            SYNCS_IN_PROGRESS.dec()

        completed_at = utcnow()
        machine.trigger(SyncEvent.COMPLETE)
        self._sync_status.upsert(
            account.workspace_id, account.id, SyncState.COMPLETED, synced_at=completed_at
        )
        self._accounts.set_watermark(account.id, completed_at)
        SYNC_RUNS.labels(provider=account.provider.value, status=SyncState.COMPLETED.value).inc()
        run.log.info("sync_completed", **run.progress.model_dump())
        return SyncOutcome(
            account_id=account.id,
            status=machine.state,
            mode=mode,
            progress=run.progress,
            failed_folders=run.failed_folders,
        )

    def _fail(self, machine: SyncStateMachine, run: _AccountRun, error: str) -> SyncOutcome:
        machine.trigger(SyncEvent.FAIL)
        self._sync_status.upsert(
            run.account.workspace_id, run.account.id, SyncState.ERROR, sync_error=error
        )
        SYNC_RUNS.labels(provider=run.account.provider.value, status=SyncState.ERROR.value).inc()
        run.log.error("sync_failed", error=error, **run.progress.model_dump())
        return SyncOutcome(
            account_id=run.account.id,
            status=machine.state,
            mode=run.mode,
            progress=run.progress,
            error=error,
            failed_folders=run.failed_folders,
        )

    # ------------------------------------------------------------------
    # Folder paging
    # ------------------------------------------------------------------

    async def _sync_folder(self, run: _AccountRun, folder: Folder, window: SyncWindow) -> None:
        cursor: str | None = None
        for _ in range(self._page_ceiling):
            page = await self._call(
                run, partial(run.client.list_message_metadata, folder, window, cursor)
            )
            run.progress.pages += 1
            run.progress.fetched += len(page.items)
            for raw in page.items:
                self._ingest(run, raw)
            self._sync_status.write_progress(run.account.workspace_id, run.account.id, run.progress)

            cursor = page.next_cursor
            if not cursor:
                return

        run.log.warning("page_ceiling_reached", folder=folder.value, ceiling=self._page_ceiling)

    async def _call(self, run: _AccountRun, make_call: Callable[[], Awaitable[T]]) -> T:
        """Await a provider call, refreshing the access token once on 401."""
        try:
            return await make_call()
        except AuthExpiredError as exc:
            if run.refreshed:
                raise ReconnectRequiredError(run.account.account_email, exc.message) from exc
            run.log.info("access_token_expired", provider=run.account.provider.value)
            await self._refresh(run)

        try:
            return await make_call()
        except AuthExpiredError as exc:
            raise ReconnectRequiredError(run.account.account_email, exc.message) from exc

    async def _refresh(self, run: _AccountRun) -> None:
        run.refreshed = True
        tokens = await self._token_refresher.refresh(run.account)
        access_token = tokens.access_token.get_secret_value()
        self._accounts.update_tokens(
            run.account.id,
            access_token,
            tokens.refresh_token.get_secret_value() if tokens.refresh_token else None,
            tokens.expires_at,
        )
        run.client.update_access_token(access_token)
        run.account = run.account.model_copy(
            update={
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token or run.account.refresh_token,
                "token_expires_at": tokens.expires_at,
            }
        )

    # ------------------------------------------------------------------
    # Per-message ingestion
    # ------------------------------------------------------------------

    def _ingest(self, run: _AccountRun, raw: dict[str, Any]) -> None:
        try:
            message = run.client.normalize(raw)
            result = self._writer.write(message, run.ctx)
        except Exception:
            run.progress.errors += 1
            run.log.warning(
                "message_ingest_failed",
                provider_message_id=_raw_message_id(raw),
                exc_info=True,
            )
            return

        if result.conversation_created:
            run.progress.conversations_created += 1
        if not result.message_created:
            run.progress.skipped += 1
            return

        run.progress.messages_created += 1
        MESSAGES_INGESTED.labels(channel=run.account.channel.value).inc()
        if (
            self._broadcaster is not None
            and run.mode == SyncMode.INCREMENTAL
            and isinstance(message, LinkedInMessageMeta)
        ):
            self._broadcaster.publish(
                LINKEDIN_MESSAGE_EVENT,
                linkedin_message_payload(message, result.conversation_id, run.ctx),
            )
