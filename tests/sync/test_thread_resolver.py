"""Tests for ThreadResolver conversation matching and creation."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from crm_inbox.domain.models import (
    ConversationRecord,
    EmailMessageMeta,
    IngestContext,
    LinkedInMessageMeta,
)
from crm_inbox.domain.types import Channel, Folder, Provider
from crm_inbox.store.conversations import ConversationStore
from crm_inbox.sync.threads import ThreadResolver

EmailFactory = Callable[..., EmailMessageMeta]
LinkedInFactory = Callable[..., LinkedInMessageMeta]


# ---------------------------------------------------------------------------
# Email threading
# ---------------------------------------------------------------------------


class TestEmailThreading:
    """Inbound and outbound email resolution."""

    def test_first_inbound_creates_conversation(
        self,
        resolver: ThreadResolver,
        conversations: ConversationStore,
        ctx: IngestContext,
        make_email: EmailFactory,
    ) -> None:
        resolved = resolver.resolve(make_email(), ctx)

        assert resolved.created is True
        conversation = conversations.get(resolved.conversation_id)
        assert conversation is not None
        assert conversation.sender_email == "lead@example.com"
        assert conversation.counterparty_key == ""
        assert conversation.account_id == ctx.account_id
        assert conversation.subject == "Intro"
        assert conversation.preview == "Hello there"

    def test_reply_in_same_thread_joins_and_touches(
        self,
        resolver: ThreadResolver,
        conversations: ConversationStore,
        ctx: IngestContext,
        make_email: EmailFactory,
    ) -> None:
        first = resolver.resolve(make_email(), ctx)
        later = datetime(2026, 3, 4, tzinfo=UTC)

        second = resolver.resolve(
            make_email(
                message_id="m-2",
                folder=Folder.SENT,
                sender="owner@company.com",
                recipient="lead@example.com",
                timestamp=later,
            ),
            ctx,
        )

        assert second.created is False
        assert second.conversation_id == first.conversation_id
        conversation = conversations.get(first.conversation_id)
        assert conversation is not None
        assert conversation.last_message_at == later
        assert conversation.sender_email == "lead@example.com"

    def test_identity_fixed_at_creation(
        self,
        resolver: ThreadResolver,
        conversations: ConversationStore,
        ctx: IngestContext,
        make_email: EmailFactory,
    ) -> None:
        first = resolver.resolve(make_email(sender_name="Alice", subject="Intro"), ctx)
        later = datetime(2026, 3, 5, tzinfo=UTC)

        second = resolver.resolve(
            make_email(
                message_id="m-2",
                sender_name="Alice2",
                subject="Re: Something else",
                timestamp=later,
            ),
            ctx,
        )

        assert second.conversation_id == first.conversation_id
        conversation = conversations.get(first.conversation_id)
        assert conversation is not None
        assert conversation.sender_name == "Alice"
        assert conversation.subject == "Intro"
        assert conversation.sender_email == "lead@example.com"
        assert conversation.last_message_at == later

    def test_outbound_to_two_recipients_makes_two_conversations(
        self,
        resolver: ThreadResolver,
        conversations: ConversationStore,
        ctx: IngestContext,
        make_email: EmailFactory,
    ) -> None:
        to_a = resolver.resolve(
            make_email(
                message_id="s-1",
                thread_id="blast",
                folder=Folder.SENT,
                sender="owner@company.com",
                recipient="a@example.com",
            ),
            ctx,
        )
        to_b = resolver.resolve(
            make_email(
                message_id="s-2",
                thread_id="blast",
                folder=Folder.SENT,
                sender="owner@company.com",
                recipient="B@Example.com",
            ),
            ctx,
        )

        assert to_a.created and to_b.created
        assert to_a.conversation_id != to_b.conversation_id
        conversation_b = conversations.get(to_b.conversation_id)
        assert conversation_b is not None
        assert conversation_b.counterparty_key == "b@example.com"

    def test_inbound_reply_joins_the_matching_outbound_conversation(
        self,
        resolver: ThreadResolver,
        ctx: IngestContext,
        make_email: EmailFactory,
    ) -> None:
        sent = dict(thread_id="blast", folder=Folder.SENT, sender="owner@company.com")
        to_a = resolver.resolve(
            make_email(message_id="s-1", recipient="a@example.com", **sent), ctx
        )
        to_b = resolver.resolve(
            make_email(message_id="s-2", recipient="b@example.com", **sent), ctx
        )

        reply = resolver.resolve(
            make_email(message_id="r-1", thread_id="blast", sender="b@example.com"), ctx
        )

        assert reply.created is False
        assert reply.conversation_id == to_b.conversation_id
        assert reply.conversation_id != to_a.conversation_id

    def test_sent_without_recipient_matches_by_thread(
        self,
        resolver: ThreadResolver,
        ctx: IngestContext,
        make_email: EmailFactory,
    ) -> None:
        inbound = resolver.resolve(make_email(), ctx)

        draft = resolver.resolve(
            make_email(
                message_id="d-1", folder=Folder.DRAFTS, sender="owner@company.com", recipient=""
            ),
            ctx,
        )

        assert draft.conversation_id == inbound.conversation_id

    def test_threads_are_workspace_scoped(
        self,
        resolver: ThreadResolver,
        ctx: IngestContext,
        make_email: EmailFactory,
    ) -> None:
        first = resolver.resolve(make_email(), ctx)
        other_ws = IngestContext(workspace_id="ws-2", account_id="acct-other")

        second = resolver.resolve(make_email(message_id="m-2"), other_ws)

        assert second.created is True
        assert second.conversation_id != first.conversation_id


# ---------------------------------------------------------------------------
# LinkedIn threading
# ---------------------------------------------------------------------------


class TestLinkedInThreading:
    """LinkedIn chats map one-to-one onto conversations."""

    def test_chat_creates_then_reuses(
        self,
        resolver: ThreadResolver,
        conversations: ConversationStore,
        ctx: IngestContext,
        make_linkedin: LinkedInFactory,
    ) -> None:
        first = resolver.resolve(make_linkedin(), ctx)
        second = resolver.resolve(make_linkedin(message_id="li-2", is_sender=True), ctx)

        assert first.created is True
        assert second.created is False
        assert second.conversation_id == first.conversation_id
        conversation = conversations.get(first.conversation_id)
        assert conversation is not None
        assert conversation.channel == Channel.LINKEDIN
        assert conversation.sender_name == "Jane Lead"
        assert conversation.sender_linkedin_url == "https://www.linkedin.com/in/janelead"
        assert conversation.sender_email is None


# ---------------------------------------------------------------------------
# Inheritance and races
# ---------------------------------------------------------------------------


class TestCreationDetails:
    """State inheritance and concurrent-insert handling."""

    def test_new_thread_inherits_assignee_and_stage(
        self,
        resolver: ThreadResolver,
        conversations: ConversationStore,
        ctx: IngestContext,
        make_email: EmailFactory,
    ) -> None:
        conversations.insert(
            ConversationRecord(
                id="prior",
                workspace_id=ctx.workspace_id,
                channel=Channel.EMAIL,
                provider=Provider.GMAIL,
                thread_key="old-thread",
                sender_email="lead@example.com",
                assigned_to="rep-7",
                custom_stage_id="stage-demo",
                last_message_at=datetime(2026, 1, 1, tzinfo=UTC),
            )
        )

        resolved = resolver.resolve(make_email(thread_id="new-thread"), ctx)

        conversation = conversations.get(resolved.conversation_id)
        assert conversation is not None
        assert conversation.assigned_to == "rep-7"
        assert conversation.custom_stage_id == "stage-demo"
        assert conversation.stage_assigned_at is not None

    def test_insert_conflict_reuses_winner(
        self, ctx: IngestContext, make_email: EmailFactory
    ) -> None:
        winner = ConversationRecord(
            id="winner",
            workspace_id=ctx.workspace_id,
            channel=Channel.EMAIL,
            provider=Provider.GMAIL,
            thread_key="t-1",
        )
        store = MagicMock(spec=ConversationStore)
        store.find_by_thread.return_value = None
        store.find_latest_by_email.return_value = None
        store.insert.side_effect = sqlite3.IntegrityError("UNIQUE constraint failed")
        store.find_by_identity.return_value = winner

        resolved = ThreadResolver(store).resolve(make_email(), ctx)

        assert resolved.conversation_id == "winner"
        assert resolved.created is False
        store.touch.assert_called_once()

    def test_insert_conflict_without_winner_propagates(
        self, ctx: IngestContext, make_email: EmailFactory
    ) -> None:
        store = MagicMock(spec=ConversationStore)
        store.find_by_thread.return_value = None
        store.find_latest_by_email.return_value = None
        store.insert.side_effect = sqlite3.IntegrityError("NOT NULL constraint failed")
        store.find_by_identity.return_value = None

        with pytest.raises(sqlite3.IntegrityError):
            ThreadResolver(store).resolve(make_email(), ctx)
