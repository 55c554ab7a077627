"""Shared pytest fixtures for the inbox ingestion test suite."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterator
from datetime import UTC, datetime

import pytest
from pydantic import SecretStr

from crm_inbox.domain.models import (
    ConnectedAccount,
    Correspondent,
    EmailMessageMeta,
    IngestContext,
    LinkedInCounterparty,
    LinkedInMessageMeta,
)
from crm_inbox.domain.types import Channel, Folder, Provider
from crm_inbox.providers.base import ProviderConfig
from crm_inbox.store import (
    AccountStore,
    ConversationStore,
    MessageStore,
    SyncStatusStore,
    UserStateStore,
    init_inbox_db,
)
from crm_inbox.sync.threads import ThreadResolver
from crm_inbox.sync.writer import IdempotentWriter

WORKSPACE_ID = "ws-1"
OWNER_EMAIL = "owner@company.com"
LEAD_EMAIL = "lead@example.com"


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    """In-memory inbox database with every table created."""
    connection = init_inbox_db(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def accounts(conn: sqlite3.Connection) -> AccountStore:
    return AccountStore(conn)


@pytest.fixture
def conversations(conn: sqlite3.Connection) -> ConversationStore:
    return ConversationStore(conn)


@pytest.fixture
def messages(conn: sqlite3.Connection) -> MessageStore:
    return MessageStore(conn)


@pytest.fixture
def sync_status(conn: sqlite3.Connection) -> SyncStatusStore:
    return SyncStatusStore(conn)


@pytest.fixture
def user_state(conn: sqlite3.Connection) -> UserStateStore:
    return UserStateStore(conn)


@pytest.fixture
def resolver(conversations: ConversationStore) -> ThreadResolver:
    return ThreadResolver(conversations)


@pytest.fixture
def writer(messages: MessageStore, resolver: ThreadResolver) -> IdempotentWriter:
    return IdempotentWriter(messages, resolver)


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def provider_config() -> ProviderConfig:
    """Provider configuration with no backoff so retries are instant."""
    return ProviderConfig(
        request_timeout_seconds=5.0,
        rate_limit_backoff_seconds=0.0,
        google_client_id="google-id",
        google_client_secret=SecretStr("google-secret"),
        microsoft_client_id="ms-id",
        microsoft_client_secret=SecretStr("ms-secret"),
        unipile_base_url="https://unipile.test",
        unipile_api_key=SecretStr("unipile-key"),
    )


@pytest.fixture
def gmail_account() -> ConnectedAccount:
    """A connected Gmail account that has never synced."""
    return ConnectedAccount(
        id="acct-gmail",
        workspace_id=WORKSPACE_ID,
        user_id="user-1",
        channel=Channel.EMAIL,
        provider=Provider.GMAIL,
        account_email=OWNER_EMAIL,
        access_token=SecretStr("access-1"),
        refresh_token=SecretStr("refresh-1"),
    )


@pytest.fixture
def linkedin_account() -> ConnectedAccount:
    """A connected LinkedIn account registered with Unipile."""
    return ConnectedAccount(
        id="acct-li",
        workspace_id=WORKSPACE_ID,
        user_id="user-1",
        channel=Channel.LINKEDIN,
        provider=Provider.UNIPILE,
        account_email="owner-linkedin",
        unipile_account_id="unipile-acct-1",
    )


@pytest.fixture
def ctx(gmail_account: ConnectedAccount) -> IngestContext:
    return IngestContext(workspace_id=WORKSPACE_ID, account_id=gmail_account.id)


def _make_email(
    message_id: str = "m-1",
    thread_id: str = "t-1",
    folder: str = Folder.INBOX,
    sender: str = LEAD_EMAIL,
    recipient: str = OWNER_EMAIL,
    timestamp: datetime | None = None,
    snippet: str = "Hello there",
    subject: str = "Intro",
    sender_name: str | None = None,
) -> EmailMessageMeta:
    """Build a normalized Gmail message."""
    return EmailMessageMeta(
        provider=Provider.GMAIL,
        provider_message_id=message_id,
        provider_thread_id=thread_id,
        sender=Correspondent(name=sender_name or sender.split("@")[0].title(), email=sender),
        recipient=Correspondent(name=recipient.split("@")[0].title(), email=recipient),
        subject=subject,
        snippet=snippet,
        timestamp=timestamp or datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
        folder=folder,
    )


def _make_linkedin(
    message_id: str = "li-1",
    chat_id: str = "chat-1",
    is_sender: bool = False,
    text: str = "Hi from LinkedIn",
    timestamp: datetime | None = None,
) -> LinkedInMessageMeta:
    """Build a normalized LinkedIn message."""
    counterparty = LinkedInCounterparty(
        name="Jane Lead",
        attendee_id="att-1",
        linkedin_url="https://www.linkedin.com/in/janelead",
    )
    return LinkedInMessageMeta(
        provider_message_id=message_id,
        chat_id=chat_id,
        counterparty=counterparty,
        sender_attendee_id="att-self" if is_sender else "att-1",
        sender_name=None if is_sender else counterparty.name,
        text=text,
        timestamp=timestamp or datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
        is_sender=is_sender,
    )


@pytest.fixture
def make_email() -> Callable[..., EmailMessageMeta]:
    """Factory for normalized Gmail messages (lead -> owner by default)."""
    return _make_email


@pytest.fixture
def make_linkedin() -> Callable[..., LinkedInMessageMeta]:
    """Factory for normalized LinkedIn messages (from the lead by default)."""
    return _make_linkedin
