"""HTTP surface over the ingestion pipeline.

Starting a sync returns immediately; the run continues on the task queue
and its progress is read from the sync status row.  Foreground store reads
are bounded by ``store_timeout_seconds`` and answer 504 when exceeded.
"""

from __future__ import annotations

import contextlib
import json
from collections.abc import AsyncIterator
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from crm_inbox.domain.models import ConnectedAccount, ConversationRecord
from crm_inbox.domain.types import SyncState, WorkQueueFilter
from crm_inbox.events.broadcaster import STREAM_HEADERS, format_sse
from crm_inbox.resilience.retry import run_with_timeout
from crm_inbox.store.conversations import ConversationStore
from crm_inbox.store.messages import MessageStore
from crm_inbox.timestamps import utcnow
from crm_inbox.workqueue.deriver import WorkQueueItem, build_work_queue, build_work_queue_item

logger = structlog.get_logger()

router = APIRouter()


class UserStateUpdate(BaseModel):
    """Body of ``PUT /conversations/{id}/user-state``."""

    user_id: str
    is_read: bool | None = None
    is_favorite: bool | None = None


async def store_timeout_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate ``StoreTimeoutError`` into HTTP 504."""
    logger.warning("store_timeout", path=request.url.path)
    return JSONResponse(status_code=504, content={"detail": str(exc)})


def _services(request: Request) -> dict[str, Any]:
    services: dict[str, Any] = request.app.state.services
    return services


def _timeout(request: Request) -> float:
    return float(request.app.state.settings.store_timeout_seconds)


async def _require_account(request: Request, account_id: str) -> ConnectedAccount:
    account = await run_with_timeout(
        _services(request)["accounts"].get, account_id, timeout=_timeout(request)
    )
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


async def _require_conversation(request: Request, conversation_id: str) -> ConversationRecord:
    conversation = await run_with_timeout(
        _services(request)["conversations"].get, conversation_id, timeout=_timeout(request)
    )
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@router.post("/accounts/{account_id}/sync", status_code=202)
async def start_sync(request: Request, account_id: str) -> dict[str, Any]:
    """Queue a sync of the account and return without waiting for it."""
    account = await _require_account(request, account_id)
    if not account.is_active:
        raise HTTPException(status_code=409, detail="Account is not active")
    queue = _services(request)["task_queue"]
    already_running = queue.is_running(account.id)
    queue.submit(account)
    return {"account_id": account.id, "queued": not already_running}


@router.get("/accounts/{account_id}/sync-status")
async def get_sync_status(request: Request, account_id: str) -> dict[str, Any]:
    """Return the status of the latest sync run, with live counters while running."""
    account = await _require_account(request, account_id)
    record = await run_with_timeout(
        _services(request)["sync_status"].get,
        account.workspace_id,
        account.id,
        timeout=_timeout(request),
    )
    if record is None:
        return {"account_id": account.id, "status": None, "last_synced_at": None}

    body: dict[str, Any] = record.model_dump(mode="json")
    if record.status == SyncState.IN_PROGRESS and record.sync_error:
        try:
            body["progress"] = json.loads(record.sync_error)
        except ValueError:
            body["progress"] = None
        body["sync_error"] = None
    return body


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(request: Request, conversation_id: str) -> list[dict[str, Any]]:
    """Return the conversation's messages, fetching bodies not yet fetched."""
    await _require_conversation(request, conversation_id)
    records = await _services(request)["body_fetcher"].ensure_conversation_bodies(conversation_id)
    return [record.model_dump(mode="json") for record in records]


@router.put("/conversations/{conversation_id}/user-state")
async def update_user_state(
    request: Request, conversation_id: str, update: UserStateUpdate
) -> dict[str, Any]:
    """Set the caller's read/favorite flags on a conversation."""
    await _require_conversation(request, conversation_id)
    state = _services(request)["user_state"].set(
        conversation_id,
        update.user_id,
        is_read=update.is_read,
        is_favorite=update.is_favorite,
    )
    return {"conversation_id": conversation_id, "user_id": update.user_id, **state.model_dump()}


# ---------------------------------------------------------------------------
# Work queue
# ---------------------------------------------------------------------------


def load_work_queue_items(
    conversations: ConversationStore,
    messages: MessageStore,
    workspace_id: str,
    sla_hours: int,
) -> list[WorkQueueItem]:
    """Build one work queue item per conversation of a workspace."""
    now = utcnow()
    return [
        build_work_queue_item(
            conversation, messages.list_for_conversation(conversation.id), now, sla_hours
        )
        for conversation in conversations.list_for_workspace(workspace_id)
    ]


@router.get("/work-queue")
async def get_work_queue(
    request: Request,
    workspace_id: str,
    queue_filter: WorkQueueFilter = Query(WorkQueueFilter.ALL, alias="filter"),
    assigned_to: str | None = None,
) -> list[dict[str, Any]]:
    """Return the workspace's work queue."""
    services = _services(request)
    settings = request.app.state.settings
    items = await run_with_timeout(
        load_work_queue_items,
        services["conversations"],
        services["messages"],
        workspace_id,
        settings.sla_hours,
        timeout=_timeout(request),
    )
    queue = build_work_queue(
        items,
        queue_filter,
        idle_threshold_days=settings.idle_threshold_days,
        assignee=assigned_to,
    )
    return [item.model_dump(mode="json") for item in queue]


# ---------------------------------------------------------------------------
# Live events
# ---------------------------------------------------------------------------


@router.get("/events")
async def stream_events(request: Request) -> StreamingResponse:
    """Stream live inbox events as server-sent events."""
    broadcaster = _services(request)["broadcaster"]

    async def event_generator() -> AsyncIterator[str]:
        # Starlette cancels the generator when the client disconnects.
        async with contextlib.aclosing(broadcaster.stream()) as events:
            async for event in events:
                yield format_sse(event["event"], event["data"])

    return StreamingResponse(
        event_generator(), media_type="text/event-stream", headers=STREAM_HEADERS
    )

