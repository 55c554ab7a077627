"""Map a normalized message onto a conversation, creating one if needed.

Email threads are partitioned by counterparty: a sent message only joins a
conversation whose stored sender is the message's recipient, so an
outbound thread to several people never merges them into one lead.
Identity columns of an existing conversation are never rewritten.
"""

from __future__ import annotations

import sqlite3
import uuid

import structlog
from pydantic import BaseModel, ConfigDict

from crm_inbox.domain.models import (
    ConversationRecord,
    EmailMessageMeta,
    IngestContext,
    LinkedInMessageMeta,
    NormalizedMessage,
)
from crm_inbox.domain.types import Channel
from crm_inbox.store.conversations import ConversationStore
from crm_inbox.sync.inheritance import resolve_inherited_state
from crm_inbox.timestamps import utcnow

logger = structlog.get_logger()


class ResolvedThread(BaseModel):
    """The conversation a message belongs to."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    created: bool


class ThreadResolver:
    """Find or create the conversation of a normalized message.

    Args:
        conversations: The conversation store.
    """

    def __init__(self, conversations: ConversationStore) -> None:
        self._conversations = conversations

    def resolve(self, message: NormalizedMessage, ctx: IngestContext) -> ResolvedThread:
        """Return the conversation of *message*, creating it on first sight.

        Args:
            message: A normalized email or LinkedIn message.
            ctx: Workspace and account the message was ingested for.

        Returns:
            The conversation id and whether it was just created.
        """
        if isinstance(message, LinkedInMessageMeta):
            return self._resolve_linkedin(message, ctx)
        return self._resolve_email(message, ctx)

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    def _resolve_email(self, message: EmailMessageMeta, ctx: IngestContext) -> ResolvedThread:
        is_sent = not message.is_from_lead
        other = message.counterparty
        other_email = other.email.strip()

        if is_sent:
            # Empty recipient falls back to the thread key alone.
            existing = self._conversations.find_by_thread(
                ctx.workspace_id, Channel.EMAIL, message.thread_key, other_email or None
            )
        else:
            existing = None
            if other_email:
                existing = self._conversations.find_by_thread(
                    ctx.workspace_id, Channel.EMAIL, message.thread_key, other_email
                )
            if existing is None:
                existing = self._conversations.find_by_thread(
                    ctx.workspace_id, Channel.EMAIL, message.thread_key
                )

        if existing is not None:
            self._conversations.touch(existing.id, message.timestamp)
            return ResolvedThread(conversation_id=existing.id, created=False)

        inherited = resolve_inherited_state(
            self._conversations, ctx.workspace_id, Channel.EMAIL, other_email, utcnow()
        )
        record = ConversationRecord(
            id=str(uuid.uuid4()),
            workspace_id=ctx.workspace_id,
            channel=Channel.EMAIL,
            provider=message.provider,
            thread_key=message.thread_key,
            counterparty_key=other_email.lower() if is_sent else "",
            account_id=ctx.account_id,
            sender_name=other.name or other_email,
            sender_email=other_email or None,
            subject=message.subject,
            preview=message.snippet,
            last_message_at=message.timestamp,
            **inherited.model_dump(),
        )
        return self._insert(record, message)

    # ------------------------------------------------------------------
    # LinkedIn
    # ------------------------------------------------------------------

    def _resolve_linkedin(
        self, message: LinkedInMessageMeta, ctx: IngestContext
    ) -> ResolvedThread:
        existing = self._conversations.find_by_thread(
            ctx.workspace_id, Channel.LINKEDIN, message.chat_id
        )
        if existing is not None:
            self._conversations.touch(existing.id, message.timestamp)
            return ResolvedThread(conversation_id=existing.id, created=False)

        counterparty = message.counterparty
        inherited = resolve_inherited_state(
            self._conversations,
            ctx.workspace_id,
            Channel.LINKEDIN,
            counterparty.linkedin_url,
            utcnow(),
            attendee_id=counterparty.attendee_id,
        )
        record = ConversationRecord(
            id=str(uuid.uuid4()),
            workspace_id=ctx.workspace_id,
            channel=Channel.LINKEDIN,
            provider=message.provider,
            thread_key=message.chat_id,
            account_id=ctx.account_id,
            sender_name=counterparty.name,
            sender_linkedin_url=counterparty.linkedin_url,
            sender_attendee_id=counterparty.attendee_id,
            preview=message.text,
            last_message_at=message.timestamp,
            **inherited.model_dump(),
        )
        return self._insert(record, message)

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    def _insert(self, record: ConversationRecord, message: NormalizedMessage) -> ResolvedThread:
        try:
            self._conversations.insert(record)
        except sqlite3.IntegrityError:
            # Another writer created the same thread identity first.
            existing = self._conversations.find_by_identity(
                record.workspace_id, record.channel, record.thread_key, record.counterparty_key
            )
            if existing is None:
                raise
            logger.info(
                "conversation_insert_conflict",
                conversation_id=existing.id,
                thread_key=record.thread_key,
            )
            self._conversations.touch(existing.id, message.timestamp)
            return ResolvedThread(conversation_id=existing.id, created=False)

        logger.debug(
            "conversation_created",
            conversation_id=record.id,
            channel=record.channel.value,
            thread_key=record.thread_key,
        )
        return ResolvedThread(conversation_id=record.id, created=True)
