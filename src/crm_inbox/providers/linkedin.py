"""LinkedIn provider client on top of the Unipile messaging API.

LinkedIn has a single ``inbox`` folder.  A metadata page is one page of
chats; for each chat the primary attendee and the messages inside the sync
window are fetched and flattened into ``{chat, attendee, message}`` records.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from crm_inbox.domain.models import (
    ConnectedAccount,
    LinkedInMessageMeta,
    MessageBody,
    MetadataPage,
    SyncWindow,
)
from crm_inbox.domain.types import Folder, Provider
from crm_inbox.providers.base import HttpProviderClient, ProviderConfig
from crm_inbox.sync.normalizer import (
    is_truthy_flag,
    normalize_linkedin_message,
    unipile_attachment,
)
from crm_inbox.timestamps import format_ts, utcnow

logger = structlog.get_logger()

CHAT_PAGE_SIZE = 50
MESSAGE_PAGE_SIZE = 100
# Upper bound on message pages read from a single chat per listing.
MAX_CHAT_MESSAGE_PAGES = 20


class LinkedInClient(HttpProviderClient):
    """Unipile implementation of the provider client contract.

    Args:
        unipile_account_id: The Unipile id of the connected LinkedIn account.
        config: Provider configuration (base URL, API key, timeouts).
        transport: Optional httpx transport, used by tests.
    """

    provider_name = Provider.UNIPILE.value
    folders: tuple[Folder, ...] = (Folder.INBOX,)

    def __init__(
        self,
        unipile_account_id: str,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config.unipile_base_url.rstrip("/"), config, transport)
        self._account_id = unipile_account_id
        self._attendees: dict[str, dict[str, Any] | None] = {}

    @classmethod
    def from_account(
        cls,
        account: ConnectedAccount,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> LinkedInClient:
        """Create a client for a connected LinkedIn account."""
        return cls(account.unipile_account_id or "", config, transport)

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "X-API-KEY": self._config.unipile_api_key.get_secret_value(),
        }

    def update_access_token(self, access_token: str) -> None:
        """Unipile authenticates with the workspace API key; nothing to swap."""

    async def primary_attendee(self, chat_id: str) -> dict[str, Any] | None:
        """Return the first non-self attendee of a chat, cached per client."""
        if chat_id not in self._attendees:
            data = await self._get(f"/api/v1/chats/{chat_id}/attendees")
            self._attendees[chat_id] = next(
                (a for a in data.get("items", []) if not is_truthy_flag(a.get("is_self"))),
                None,
            )
        return self._attendees[chat_id]

    async def _chat_messages(self, chat_id: str, after: str) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        cursor: str | None = None
        for _ in range(MAX_CHAT_MESSAGE_PAGES):
            params: dict[str, Any] = {"after": after, "limit": MESSAGE_PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            data = await self._get(f"/api/v1/chats/{chat_id}/messages", params)
            messages.extend(data.get("items", []))
            cursor = data.get("cursor")
            if not cursor:
                break
        return messages

    async def list_message_metadata(
        self, folder: Folder, window: SyncWindow, cursor: str | None = None
    ) -> MetadataPage:
        """List one page of chats and flatten their messages.

        Args:
            folder: Always ``inbox`` for LinkedIn.
            window: The time window; becomes the ``after`` parameter.
            cursor: Chat-list cursor of the previous page.

        Returns:
            A page of ``{chat, attendee, message}`` records.
        """
        after = format_ts(window.start(utcnow()))
        params: dict[str, Any] = {
            "account_id": self._account_id,
            "limit": CHAT_PAGE_SIZE,
            "after": after,
        }
        if cursor:
            params["cursor"] = cursor

        data = await self._get("/api/v1/chats", params)
        items: list[dict[str, Any]] = []
        for chat in data.get("items", []):
            attendee = await self.primary_attendee(chat["id"])
            for message in await self._chat_messages(chat["id"], after):
                items.append({"chat": chat, "attendee": attendee, "message": message})

        logger.debug("linkedin_page_listed", folder=folder.value, count=len(items))
        return MetadataPage(items=items, next_cursor=data.get("cursor"))

    async def fetch_message_record(
        self, message_id: str, chat_id: str | None = None
    ) -> dict[str, Any]:
        """Fetch one message as a ``{chat, attendee, message}`` record."""
        message = await self._get(f"/api/v1/messages/{message_id}")
        chat_id = chat_id or message.get("chat_id")
        chat = await self._get(f"/api/v1/chats/{chat_id}")
        attendee = await self.primary_attendee(chat["id"])
        return {"chat": chat, "attendee": attendee, "message": message}

    async def fetch_body(self, message_id: str) -> MessageBody:
        """LinkedIn messages are plain text; the body is the full text plus attachments."""
        message = await self._get(f"/api/v1/messages/{message_id}")
        return MessageBody(
            text_body=message.get("text") or None,
            attachments=[unipile_attachment(a) for a in message.get("attachments") or []],
        )

    def normalize(self, raw: dict[str, Any]) -> LinkedInMessageMeta:
        return normalize_linkedin_message(raw)
