"""Tests for inbox domain models and the normalized message union."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from pydantic import TypeAdapter, ValidationError

from crm_inbox.domain.errors import (
    AuthExpiredError,
    ProviderError,
    RateLimitedError,
    ReconnectRequiredError,
)
from crm_inbox.domain.models import (
    Correspondent,
    EmailMessageMeta,
    LinkedInCounterparty,
    LinkedInMessageMeta,
    NormalizedMessage,
    SyncWindow,
)
from crm_inbox.domain.types import Folder, Provider

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _email(folder: str) -> EmailMessageMeta:
    return EmailMessageMeta(
        provider=Provider.OUTLOOK,
        provider_message_id="m-1",
        provider_thread_id="conv-1",
        sender=Correspondent(name="Owner", email="owner@company.com"),
        recipient=Correspondent(name="Lead", email="lead@example.com"),
        timestamp=NOW,
        folder=folder,
    )


# ---------------------------------------------------------------------------
# EmailMessageMeta
# ---------------------------------------------------------------------------


class TestEmailMessageMeta:
    """Direction and counterparty derive from the folder."""

    def test_inbox_message_is_from_lead(self) -> None:
        message = _email(Folder.INBOX)
        assert message.is_from_lead is True
        assert message.counterparty.email == "owner@company.com"

    @pytest.mark.parametrize("folder", [Folder.SENT, Folder.DRAFTS])
    def test_outbound_message_counterparty_is_recipient(self, folder: Folder) -> None:
        message = _email(folder)
        assert message.is_from_lead is False
        assert message.counterparty.email == "lead@example.com"

    def test_thread_key_is_provider_thread_id(self) -> None:
        assert _email(Folder.INBOX).thread_key == "conv-1"

    def test_is_frozen(self) -> None:
        message = _email(Folder.INBOX)
        with pytest.raises(ValidationError):
            message.subject = "changed"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# LinkedInMessageMeta and the discriminated union
# ---------------------------------------------------------------------------


class TestLinkedInMessageMeta:
    """LinkedIn direction comes from is_sender."""

    def test_direction(self) -> None:
        inbound = LinkedInMessageMeta(
            provider_message_id="li-1",
            chat_id="chat-1",
            counterparty=LinkedInCounterparty(),
            timestamp=NOW,
        )
        outbound = inbound.model_copy(update={"is_sender": True})
        assert inbound.is_from_lead is True
        assert outbound.is_from_lead is False
        assert inbound.thread_key == "chat-1"
        assert inbound.counterparty.name == "LinkedIn Contact"

    def test_union_dispatches_on_channel(self) -> None:
        adapter: TypeAdapter[Any] = TypeAdapter(NormalizedMessage)
        parsed = adapter.validate_python(
            {
                "channel": "linkedin",
                "provider_message_id": "li-1",
                "chat_id": "chat-1",
                "counterparty": {"name": "Jane"},
                "timestamp": NOW.isoformat(),
            }
        )
        assert isinstance(parsed, LinkedInMessageMeta)
        assert parsed.provider == Provider.UNIPILE


# ---------------------------------------------------------------------------
# SyncWindow
# ---------------------------------------------------------------------------


class TestSyncWindow:
    """Exactly one of days_back / since."""

    def test_days_back_window(self) -> None:
        window = SyncWindow(days_back=90)
        assert window.start(NOW) == NOW - timedelta(days=90)

    def test_since_window(self) -> None:
        since = NOW - timedelta(hours=2)
        assert SyncWindow(since=since).start(NOW) == since

    def test_rejects_both(self) -> None:
        with pytest.raises(ValidationError):
            SyncWindow(days_back=1, since=NOW)

    def test_rejects_neither(self) -> None:
        with pytest.raises(ValidationError):
            SyncWindow()

    def test_rejects_non_positive_days(self) -> None:
        with pytest.raises(ValidationError):
            SyncWindow(days_back=0)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    """Provider error hierarchy and reconnect message."""

    def test_subclasses(self) -> None:
        assert issubclass(AuthExpiredError, ProviderError)
        assert issubclass(RateLimitedError, ProviderError)

    def test_provider_error_attributes(self) -> None:
        exc = ProviderError("gmail", 500, "backend error")
        assert exc.provider == "gmail"
        assert exc.status == 500
        assert "backend error" in str(exc)

    def test_reconnect_message_names_account(self) -> None:
        exc = ReconnectRequiredError("owner@company.com", "invalid_grant")
        assert str(exc) == (
            "Authentication failed. Please reconnect your account: owner@company.com"
        )
        assert exc.reason == "invalid_grant"
