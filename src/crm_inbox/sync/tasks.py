"""Background execution of account syncs.

``SyncTaskQueue`` runs each sync as an ``asyncio.Task`` keyed by account id,
so a second request for an account that is already syncing joins the
running task instead of starting a parallel one.  ``SyncScheduler`` submits
every active account on a fixed interval.
"""

from __future__ import annotations

import asyncio
import sqlite3
from functools import partial

import structlog

from crm_inbox.domain.models import ConnectedAccount
from crm_inbox.domain.types import SyncState
from crm_inbox.store.accounts import AccountStore
from crm_inbox.store.sync_status import SyncStatusStore
from crm_inbox.sync.orchestrator import SyncOrchestrator, SyncOutcome

logger = structlog.get_logger()

CANCELLED_MESSAGE = "sync cancelled"


class SyncTaskQueue:
    """Observable, cancellable sync tasks with one task per account.

    Args:
        orchestrator: Runs a single account sync.
        sync_status: Records pending and cancelled runs.
    """

    def __init__(self, orchestrator: SyncOrchestrator, sync_status: SyncStatusStore) -> None:
        self._orchestrator = orchestrator
        self._sync_status = sync_status
        self._tasks: dict[str, asyncio.Task[SyncOutcome]] = {}

    def submit(self, account: ConnectedAccount) -> asyncio.Task[SyncOutcome]:
        """Start syncing *account*, or return the sync already running for it.

        Must be called from a running event loop.
        """
        running = self._tasks.get(account.id)
        if running is not None and not running.done():
            logger.info("sync_already_running", account_id=account.id)
            return running

        self._sync_status.upsert(account.workspace_id, account.id, SyncState.PENDING)
        task = asyncio.create_task(self._run(account), name=f"sync-{account.id}")
        self._tasks[account.id] = task
        task.add_done_callback(partial(self._forget, account.id))
        logger.info("sync_submitted", account_id=account.id)
        return task

    def is_running(self, account_id: str) -> bool:
        task = self._tasks.get(account_id)
        return task is not None and not task.done()

    def cancel(self, account_id: str) -> bool:
        """Cancel the running sync of an account.

        Returns:
            ``True`` if a running task was cancelled.
        """
        task = self._tasks.get(account_id)
        if task is None or task.done():
            return False
        return task.cancel()

    async def shutdown(self) -> None:
        """Cancel every running sync and wait for them to finish."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, account: ConnectedAccount) -> SyncOutcome:
        try:
            return await self._orchestrator.run(account)
        except asyncio.CancelledError:
            logger.warning("sync_cancelled", account_id=account.id)
            self._sync_status.upsert(
                account.workspace_id, account.id, SyncState.ERROR, sync_error=CANCELLED_MESSAGE
            )
            raise
        except Exception as exc:
            logger.exception("sync_task_failed", account_id=account.id)
            self._sync_status.upsert(
                account.workspace_id,
                account.id,
                SyncState.ERROR,
                sync_error=str(exc) or type(exc).__name__,
            )
            raise

    def _forget(self, account_id: str, task: asyncio.Task[SyncOutcome]) -> None:
        if self._tasks.get(account_id) is task:
            del self._tasks[account_id]
        if not task.cancelled():
            # Mark the exception retrieved; it was logged in _run.
            task.exception()


class SyncScheduler:
    """Submit every active account to the task queue on an interval.

    Args:
        queue: The sync task queue.
        accounts: Source of active accounts.
        interval_seconds: Seconds between rounds.
    """

    def __init__(
        self, queue: SyncTaskQueue, accounts: AccountStore, interval_seconds: float
    ) -> None:
        self._queue = queue
        self._accounts = accounts
        self._interval_seconds = interval_seconds

    def tick(self) -> int:
        """Submit one round of syncs.

        Returns:
            The number of accounts submitted.
        """
        try:
            accounts = self._accounts.list_active()
        except sqlite3.Error:
            logger.exception("scheduler_account_listing_failed")
            return 0
        for account in accounts:
            self._queue.submit(account)
        logger.info("scheduled_sync_round", accounts=len(accounts))
        return len(accounts)

    async def run_forever(self) -> None:
        """Run scheduling rounds until cancelled."""
        while True:
            self.tick()
            await asyncio.sleep(self._interval_seconds)
