"""Live event broadcasting for connected inbox clients."""

from crm_inbox.events.broadcaster import (
    LINKEDIN_MESSAGE_EVENT,
    STREAM_HEADERS,
    EventBroadcaster,
    format_sse,
    linkedin_message_payload,
)

__all__ = [
    "LINKEDIN_MESSAGE_EVENT",
    "STREAM_HEADERS",
    "EventBroadcaster",
    "format_sse",
    "linkedin_message_payload",
]
