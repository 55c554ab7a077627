"""Idempotent message ingestion.

``(workspace_id, provider_message_id)`` is the idempotency key: a message
that is already stored is never rewritten, so re-running a sync over the
same window changes nothing.
"""

from __future__ import annotations

import sqlite3
import uuid

import structlog
from pydantic import BaseModel, ConfigDict

from crm_inbox.domain.models import (
    IngestContext,
    LinkedInMessageMeta,
    MessageRecord,
    NormalizedMessage,
)
from crm_inbox.domain.types import Channel
from crm_inbox.store.messages import MessageStore
from crm_inbox.sync.threads import ThreadResolver

logger = structlog.get_logger()


class WriteResult(BaseModel):
    """What a single write changed."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    conversation_created: bool
    message_created: bool


def to_message_record(
    message: NormalizedMessage, conversation_id: str, ctx: IngestContext
) -> MessageRecord:
    """Build the message row for a normalized message."""
    if isinstance(message, LinkedInMessageMeta):
        return MessageRecord(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            workspace_id=ctx.workspace_id,
            channel=Channel.LINKEDIN,
            provider_message_id=message.provider_message_id,
            provider_thread_id=message.chat_id,
            sender_name=message.sender_name,
            sender_attendee_id=message.sender_attendee_id,
            content=message.text,
            attachments=message.attachments,
            is_from_lead=message.is_from_lead,
            provider_folder=message.folder,
            created_at=message.timestamp,
        )
    return MessageRecord(
        id=str(uuid.uuid4()),
        conversation_id=conversation_id,
        workspace_id=ctx.workspace_id,
        channel=Channel.EMAIL,
        provider_message_id=message.provider_message_id,
        provider_thread_id=message.provider_thread_id,
        sender_name=message.sender.name,
        sender_email=message.sender.email or None,
        content=message.snippet,
        is_from_lead=message.is_from_lead,
        provider_folder=message.folder,
        created_at=message.timestamp,
    )


class IdempotentWriter:
    """Write normalized messages exactly once.

    Args:
        messages: The message store.
        resolver: Resolves (or creates) the conversation of each message.
    """

    def __init__(self, messages: MessageStore, resolver: ThreadResolver) -> None:
        self._messages = messages
        self._resolver = resolver

    def write(self, message: NormalizedMessage, ctx: IngestContext) -> WriteResult:
        """Ingest *message* unless it is already stored.

        Args:
            message: A normalized email or LinkedIn message.
            ctx: Workspace and account the message belongs to.

        Returns:
            The conversation id and which rows were created.
        """
        existing = self._messages.get_by_provider_id(ctx.workspace_id, message.provider_message_id)
        if existing is not None:
            return WriteResult(
                conversation_id=existing.conversation_id,
                conversation_created=False,
                message_created=False,
            )

        thread = self._resolver.resolve(message, ctx)
        record = to_message_record(message, thread.conversation_id, ctx)
        try:
            self._messages.insert(record)
        except sqlite3.IntegrityError:
            stored = self._messages.get_by_provider_id(
                ctx.workspace_id, message.provider_message_id
            )
            if stored is None:
                raise
            logger.debug(
                "message_already_present",
                provider_message_id=message.provider_message_id,
                conversation_id=thread.conversation_id,
            )
            return WriteResult(
                conversation_id=thread.conversation_id,
                conversation_created=thread.created,
                message_created=False,
            )

        return WriteResult(
            conversation_id=thread.conversation_id,
            conversation_created=thread.created,
            message_created=True,
        )
