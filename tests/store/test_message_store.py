"""Tests for MessageStore idempotency key and lazy body columns."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime

import pytest

from crm_inbox.domain.models import Attachment, ConversationRecord, MessageBody, MessageRecord
from crm_inbox.domain.types import Channel, Provider
from crm_inbox.store.conversations import ConversationStore
from crm_inbox.store.messages import MessageStore

FETCHED_AT = datetime(2026, 3, 2, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _conversation(conversations: ConversationStore) -> None:
    conversations.insert(
        ConversationRecord(
            id="c-1",
            workspace_id="ws-1",
            channel=Channel.EMAIL,
            provider=Provider.GMAIL,
            thread_key="t-1",
        )
    )


def _message(
    message_id: str = "msg-1",
    provider_message_id: str = "p-1",
    created_at: datetime | None = None,
    content: str = "snippet",
) -> MessageRecord:
    return MessageRecord(
        id=message_id,
        conversation_id="c-1",
        workspace_id="ws-1",
        channel=Channel.EMAIL,
        provider_message_id=provider_message_id,
        content=content,
        is_from_lead=True,
        provider_folder="inbox",
        created_at=created_at or datetime(2026, 3, 1, tzinfo=UTC),
    )


class TestInsert:
    """Insert and the (workspace_id, provider_message_id) key."""

    def test_insert_and_lookup(self, messages: MessageStore) -> None:
        messages.insert(_message())

        by_id = messages.get("msg-1")
        by_provider = messages.get_by_provider_id("ws-1", "p-1")

        assert by_id is not None
        assert by_provider is not None
        assert by_provider.id == "msg-1"
        assert by_id.body_fetched_at is None
        assert by_id.attachments == []

    def test_duplicate_provider_id_raises(self, messages: MessageStore) -> None:
        messages.insert(_message())

        with pytest.raises(sqlite3.IntegrityError):
            messages.insert(_message(message_id="msg-2"))

        assert len(messages.list_for_conversation("c-1")) == 1

    def test_unknown_conversation_violates_foreign_key(self, messages: MessageStore) -> None:
        orphan = _message().model_copy(update={"conversation_id": "missing"})

        with pytest.raises(sqlite3.IntegrityError):
            messages.insert(orphan)


class TestBodies:
    """save_body and mark_body_failed."""

    def test_save_body(self, messages: MessageStore) -> None:
        messages.insert(_message())
        body = MessageBody(
            html_body="<p>Hi</p>",
            text_body="Hi",
            attachments=[Attachment(filename="deck.pdf", mime_type="application/pdf", size=10)],
        )

        messages.save_body("msg-1", body, FETCHED_AT)

        loaded = messages.get("msg-1")
        assert loaded is not None
        assert loaded.html_body == "<p>Hi</p>"
        assert loaded.attachments[0].filename == "deck.pdf"
        assert loaded.body_fetched_at == FETCHED_AT
        assert loaded.body_fetch_error is None

    def test_mark_body_failed(self, messages: MessageStore) -> None:
        messages.insert(_message())

        messages.mark_body_failed("msg-1", "gone", FETCHED_AT)

        loaded = messages.get("msg-1")
        assert loaded is not None
        assert loaded.body_fetch_error == "gone"
        assert loaded.body_fetched_at == FETCHED_AT


class TestOrdering:
    """Listing order and preview."""

    def test_list_oldest_first_and_latest_preview(self, messages: MessageStore) -> None:
        messages.insert(
            _message("late", "p-late", datetime(2026, 3, 3, tzinfo=UTC), content="second")
        )
        messages.insert(
            _message("early", "p-early", datetime(2026, 3, 1, tzinfo=UTC), content="first")
        )

        assert [m.id for m in messages.list_for_conversation("c-1")] == ["early", "late"]
        assert messages.latest_preview("c-1") == "second"
        assert messages.latest_preview("none") is None

    def test_deleting_conversation_cascades(
        self, messages: MessageStore, conversations: ConversationStore
    ) -> None:
        messages.insert(_message())

        conversations.delete("c-1")

        assert messages.get("msg-1") is None
