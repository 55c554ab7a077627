"""Tests for the Gmail provider client."""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from email.message import EmailMessage
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from crm_inbox.domain.errors import AuthExpiredError, ProviderError, RateLimitedError
from crm_inbox.domain.models import SyncWindow
from crm_inbox.domain.types import Folder
from crm_inbox.providers.base import ProviderConfig
from crm_inbox.providers.gmail import GmailClient
from crm_inbox.sync.normalizer import SYNC_FOLDER_KEY

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(status: int, message: str = "failure") -> HttpError:
    resp = MagicMock(status=status, reason=message)
    content = f'{{"error": {{"message": "{message}"}}}}'.encode()
    return HttpError(resp=resp, content=content)


def _meta(message_id: str) -> dict[str, object]:
    return {
        "id": message_id,
        "threadId": "t-1",
        "internalDate": "1772366400000",
        "payload": {"headers": [{"name": "From", "value": "lead@example.com"}]},
    }


def _raw_email() -> str:
    msg = EmailMessage()
    msg["From"] = "lead@example.com"
    msg["To"] = "owner@company.com"
    msg["Subject"] = "Proposal"
    msg.set_content("Plain body")
    msg.add_alternative("<p>HTML body</p>", subtype="html")
    return base64.urlsafe_b64encode(msg.as_bytes()).decode().rstrip("=")


@pytest.fixture
def service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(service: MagicMock, provider_config: ProviderConfig) -> GmailClient:
    return GmailClient(service, provider_config)


# ---------------------------------------------------------------------------
# list_message_metadata
# ---------------------------------------------------------------------------


class TestListMessageMetadata:
    """Tests for GmailClient.list_message_metadata."""

    @pytest.mark.anyio()
    async def test_lists_and_tags_folder(self, client: GmailClient, service: MagicMock) -> None:
        messages = service.users().messages()
        messages.list().execute.return_value = {
            "messages": [{"id": "m-1"}, {"id": "m-2"}],
            "nextPageToken": "page-2",
        }
        messages.get().execute.side_effect = [_meta("m-1"), _meta("m-2")]

        page = await client.list_message_metadata(Folder.SENT, SyncWindow(days_back=90))

        assert [item["id"] for item in page.items] == ["m-1", "m-2"]
        assert all(item[SYNC_FOLDER_KEY] == "sent" for item in page.items)
        assert page.next_cursor == "page-2"
        list_kwargs = messages.list.call_args.kwargs
        assert list_kwargs["q"].startswith("in:sent after:")
        assert "pageToken" not in list_kwargs

    @pytest.mark.anyio()
    async def test_incremental_window_and_cursor(
        self, client: GmailClient, service: MagicMock
    ) -> None:
        messages = service.users().messages()
        messages.list().execute.return_value = {}
        since = datetime(2026, 3, 1, tzinfo=UTC)

        page = await client.list_message_metadata(
            Folder.INBOX, SyncWindow(since=since), cursor="page-2"
        )

        assert page.items == []
        assert page.next_cursor is None
        list_kwargs = messages.list.call_args.kwargs
        assert list_kwargs["q"] == f"in:inbox after:{int(since.timestamp())}"
        assert list_kwargs["pageToken"] == "page-2"

    @pytest.mark.anyio()
    async def test_401_raises_auth_expired(self, client: GmailClient, service: MagicMock) -> None:
        service.users().messages().list().execute.side_effect = _http_error(401, "Invalid")

        with pytest.raises(AuthExpiredError) as exc_info:
            await client.list_message_metadata(Folder.INBOX, SyncWindow(days_back=1))

        assert exc_info.value.status == 401

    @pytest.mark.anyio()
    async def test_429_retried_once(self, client: GmailClient, service: MagicMock) -> None:
        execute = service.users().messages().list().execute
        execute.side_effect = [_http_error(429, "Slow down"), {"messages": []}]

        page = await client.list_message_metadata(Folder.INBOX, SyncWindow(days_back=1))

        assert page.items == []
        assert execute.call_count == 2

    @pytest.mark.anyio()
    async def test_second_429_propagates(self, client: GmailClient, service: MagicMock) -> None:
        service.users().messages().list().execute.side_effect = [
            _http_error(429),
            _http_error(429),
        ]

        with pytest.raises(RateLimitedError):
            await client.list_message_metadata(Folder.INBOX, SyncWindow(days_back=1))

    @pytest.mark.anyio()
    async def test_server_error_is_provider_error(
        self, client: GmailClient, service: MagicMock
    ) -> None:
        execute = service.users().messages().list().execute
        execute.side_effect = _http_error(500, "Backend Error")

        with pytest.raises(ProviderError) as exc_info:
            await client.list_message_metadata(Folder.INBOX, SyncWindow(days_back=1))

        assert not isinstance(exc_info.value, AuthExpiredError)
        assert exc_info.value.status == 500
        assert execute.call_count == 1


# ---------------------------------------------------------------------------
# fetch_body / tokens
# ---------------------------------------------------------------------------


class TestFetchBody:
    """Tests for GmailClient.fetch_body."""

    @pytest.mark.anyio()
    async def test_decodes_raw_message(self, client: GmailClient, service: MagicMock) -> None:
        service.users().messages().get().execute.return_value = {"raw": _raw_email()}

        body = await client.fetch_body("m-1")

        assert body.html_body is not None
        assert "<p>HTML body</p>" in body.html_body
        assert body.text_body is not None
        assert "Plain body" in body.text_body
        assert service.users().messages().get.call_args.kwargs["format"] == "raw"


class TestAccessToken:
    """Tests for rebuilding the service after a token refresh."""

    def test_update_access_token_rebuilds_service(self, client: GmailClient) -> None:
        with patch("crm_inbox.providers.gmail.build") as mock_build:
            client.update_access_token("access-2")

        mock_build.assert_called_once()
        credentials = mock_build.call_args.kwargs["credentials"]
        assert credentials.token == "access-2"
