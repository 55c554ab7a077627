"""FastAPI webhook endpoint for Unipile (LinkedIn) events.

Verifies the HMAC-SHA256 signature against the raw request body before
JSON parsing.  New messages go through the same normalize/write path as a
sync and are broadcast to live listeners; account events toggle the
account.  Every verified request is acknowledged with 200 so Unipile does
not retry events we cannot process.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, cast

import structlog
from fastapi import APIRouter, HTTPException, Request

from crm_inbox.domain.models import ConnectedAccount, IngestContext
from crm_inbox.domain.types import SyncState
from crm_inbox.events.broadcaster import LINKEDIN_MESSAGE_EVENT, linkedin_message_payload
from crm_inbox.providers.linkedin import LinkedInClient

logger = structlog.get_logger()

router = APIRouter()

SIGNATURE_HEADER = "X-Unipile-Signature"

MESSAGE_CREATED_EVENTS = frozenset(
    {"message.created", "message.received", "message_received", "new_message"}
)
ACCOUNT_DISCONNECTED_EVENTS = frozenset({"account.disconnected", "account.revoked"})
ACCOUNT_CONNECTED_EVENTS = frozenset({"account.connected"})

DISCONNECTED_MESSAGE = "LinkedIn account disconnected. Please reconnect your account."


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Verify the HMAC-SHA256 hex digest of a webhook payload.

    Must be called with the raw body bytes, before any JSON parsing.

    Args:
        body: The raw request body bytes.
        signature: The hex digest from the ``X-Unipile-Signature`` header.
        secret: The webhook signing secret.

    Returns:
        True if the computed signature matches the provided one.
    """
    computed = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, signature)


def event_body(payload: dict[str, Any]) -> dict[str, Any]:
    """Return the event fields, unwrapping the ``{event, data}`` envelope."""
    data = payload.get("data")
    return data if isinstance(data, dict) else payload


def _has_content(message: dict[str, Any]) -> bool:
    text = (message.get("text") or message.get("body_text") or "").strip()
    return bool(text) or bool(message.get("attachments"))


async def handle_new_message(
    services: dict[str, Any],
    account: ConnectedAccount,
    payload: dict[str, Any],
) -> dict[str, str]:
    """Ingest the message a ``message.created`` event refers to."""
    body = event_body(payload)
    message = body.get("message") or {}
    chat_id = message.get("chat_id") or body.get("chat_id") or body.get("conversation_id")
    message_id = message.get("id") or body.get("message_id")
    if not message_id:
        logger.warning("unipile_message_event_missing_id", chat_id=chat_id)
        return {"status": "ok"}

    client = cast(LinkedInClient, services["client_factory"](account))
    if message and chat_id:
        attendee = await client.primary_attendee(chat_id)
        record = {"chat": {"id": chat_id}, "attendee": attendee, "message": message}
    else:
        record = await client.fetch_message_record(message_id, chat_id)

    if not _has_content(record["message"]):
        logger.info("unipile_empty_message_skipped", message_id=message_id, chat_id=chat_id)
        return {"status": "ok"}

    normalized = client.normalize(record)
    ctx = IngestContext(workspace_id=account.workspace_id, account_id=account.id)
    result = services["writer"].write(normalized, ctx)
    logger.info(
        "unipile_message_ingested",
        message_id=message_id,
        conversation_id=result.conversation_id,
        created=result.message_created,
    )

    if result.message_created:
        services["broadcaster"].publish(
            LINKEDIN_MESSAGE_EVENT,
            linkedin_message_payload(normalized, result.conversation_id, ctx),
        )
    return {"status": "ok"}


def handle_account_event(
    services: dict[str, Any], account: ConnectedAccount, event: str
) -> dict[str, str]:
    """Deactivate or reactivate an account after a Unipile account event."""
    if event in ACCOUNT_DISCONNECTED_EVENTS:
        services["accounts"].set_active(account.id, False)
        services["sync_status"].upsert(
            account.workspace_id, account.id, SyncState.ERROR, sync_error=DISCONNECTED_MESSAGE
        )
        logger.warning("unipile_account_disconnected", account_id=account.id, event=event)
    else:
        services["accounts"].set_active(account.id, True)
        logger.info("unipile_account_connected", account_id=account.id)
    return {"status": "ok"}


@router.post("/webhooks/unipile")
async def unipile_webhook(request: Request) -> dict[str, str]:
    """Receive and process Unipile webhook events.

    1. Read raw body bytes (before JSON parsing).
    2. Verify the HMAC-SHA256 signature when a secret is configured.
    3. Dispatch on the event type; unknown events are acknowledged.

    Raises:
        HTTPException: 401 if the signature is missing or invalid,
            400 if the body is not a JSON object.
    """
    secret = request.app.state.settings.unipile_webhook_secret.get_secret_value()
    raw_body = await request.body()

    if secret:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            logger.warning("unipile_webhook_missing_signature")
            raise HTTPException(status_code=401, detail="Missing signature")
        if not verify_signature(raw_body, signature, secret):
            logger.warning("unipile_webhook_invalid_signature")
            raise HTTPException(status_code=401, detail="Invalid signature")
    else:
        logger.debug("unipile_webhook_signature_check_skipped")

    try:
        payload = json.loads(raw_body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    event = payload.get("event") or payload.get("type") or "unknown"
    handled = (
        MESSAGE_CREATED_EVENTS | ACCOUNT_DISCONNECTED_EVENTS | ACCOUNT_CONNECTED_EVENTS
    )
    if event not in handled:
        logger.info("unipile_event_ignored", event_type=event)
        return {"status": "ok"}

    body = event_body(payload)
    message = body.get("message") or {}
    unipile_account_id = message.get("account_id") or body.get("account_id")
    services: dict[str, Any] = request.app.state.services
    account = (
        services["accounts"].find_by_unipile_id(unipile_account_id)
        if unipile_account_id
        else None
    )
    if account is None:
        logger.warning("unipile_account_not_found", unipile_account_id=unipile_account_id)
        return {"status": "ok"}

    try:
        if event in MESSAGE_CREATED_EVENTS:
            return await handle_new_message(services, account, payload)
        return handle_account_event(services, account, event)
    except Exception:
        logger.exception("unipile_webhook_processing_failed", event_type=event)
        return {"status": "error"}
