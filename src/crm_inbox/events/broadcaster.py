"""In-process fan-out of live inbox events to connected listeners.

Delivery is best-effort: a listener whose queue is full misses the event,
and a listener that connects later never sees earlier events.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import structlog

from crm_inbox.domain.models import IngestContext, LinkedInMessageMeta

logger = structlog.get_logger()

LINKEDIN_MESSAGE_EVENT = "linkedin_message"

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event_type: str, data: dict[str, Any]) -> str:
    """Format a single server-sent event."""
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


def linkedin_message_payload(
    message: LinkedInMessageMeta, conversation_id: str, ctx: IngestContext
) -> dict[str, Any]:
    """Payload of a ``linkedin_message`` event."""
    return {
        "workspace_id": ctx.workspace_id,
        "account_id": ctx.account_id,
        "conversation_id": conversation_id,
        "provider_message_id": message.provider_message_id,
        "chat_id": message.chat_id,
        "sender_name": message.sender_name,
        "text": message.text,
        "is_from_lead": message.is_from_lead,
        "timestamp": message.timestamp.isoformat(),
    }


class EventBroadcaster:
    """Publish events to every currently subscribed listener queue.

    Args:
        queue_size: Maximum number of undelivered events per listener.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        """Register a new listener and return its queue."""
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    def publish(self, event: str, payload: dict[str, Any]) -> int:
        """Fan *payload* out to all listeners.

        Returns:
            The number of listeners the event was delivered to.
        """
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait({"event": event, "data": payload})
            except asyncio.QueueFull:
                logger.debug("event_dropped_queue_full", event=event)
                continue
            delivered += 1
        return delivered

    async def stream(self) -> AsyncIterator[dict[str, Any]]:
        """Yield events for one listener until the consumer stops iterating."""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)
