"""Outlook provider client on top of Microsoft Graph.

Folders map to well-known Graph mail folders; ``important`` is the
flagged-message view across all folders.  Graph pages carry an
``@odata.nextLink`` whose ``$skiptoken`` is the page cursor.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx
import structlog

from crm_inbox.domain.models import (
    Attachment,
    ConnectedAccount,
    EmailMessageMeta,
    MessageBody,
    MetadataPage,
    SyncWindow,
)
from crm_inbox.domain.types import Folder, Provider
from crm_inbox.providers.base import HttpProviderClient, ProviderConfig
from crm_inbox.sync.normalizer import SYNC_FOLDER_KEY, normalize_outlook_message
from crm_inbox.timestamps import format_ts, utcnow

logger = structlog.get_logger()

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

FOLDER_PATHS: dict[Folder, str] = {
    Folder.INBOX: "/me/mailFolders('Inbox')/messages",
    Folder.SENT: "/me/mailFolders('SentItems')/messages",
    Folder.DRAFTS: "/me/mailFolders('Drafts')/messages",
    Folder.ARCHIVE: "/me/mailFolders('Archive')/messages",
    Folder.TRASH: "/me/mailFolders('DeletedItems')/messages",
    Folder.IMPORTANT: "/me/messages",
}

SELECT_FIELDS = (
    "id,conversationId,subject,bodyPreview,receivedDateTime,sentDateTime,from,toRecipients"
)
PAGE_SIZE = 100


def skiptoken_from_next_link(next_link: str | None) -> str | None:
    """Extract the ``$skiptoken`` query parameter from an ``@odata.nextLink``."""
    if not next_link:
        return None
    values = parse_qs(urlsplit(next_link).query).get("$skiptoken")
    return values[0] if values else None


class OutlookClient(HttpProviderClient):
    """Outlook implementation of the provider client contract.

    Args:
        access_token: The Graph bearer token of the account.
        config: Provider configuration (timeouts, backoff).
        transport: Optional httpx transport, used by tests.
    """

    provider_name = Provider.OUTLOOK.value
    folders: tuple[Folder, ...] = (
        Folder.INBOX,
        Folder.SENT,
        Folder.IMPORTANT,
        Folder.DRAFTS,
        Folder.ARCHIVE,
        Folder.TRASH,
    )

    def __init__(
        self,
        access_token: str,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(GRAPH_BASE_URL, config, transport)
        self._access_token = access_token

    @classmethod
    def from_account(
        cls,
        account: ConnectedAccount,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> OutlookClient:
        """Create a client for a connected Outlook account."""
        return cls(account.access_token.get_secret_value(), config, transport)

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self._access_token}"}

    def update_access_token(self, access_token: str) -> None:
        self._access_token = access_token

    async def list_message_metadata(
        self, folder: Folder, window: SyncWindow, cursor: str | None = None
    ) -> MetadataPage:
        """List one page of message metadata in *folder*.

        Args:
            folder: The canonical folder to list.
            window: The time window; becomes a ``receivedDateTime ge`` filter.
            cursor: ``$skiptoken`` of the previous page.

        Returns:
            A page of Graph message resources tagged with the folder.
        """
        filters = [f"receivedDateTime ge {format_ts(window.start(utcnow()))}"]
        if folder == Folder.IMPORTANT:
            filters.append("flag/flagStatus eq 'flagged'")
        params: dict[str, Any] = {
            "$select": SELECT_FIELDS,
            "$filter": " and ".join(filters),
            "$orderby": "receivedDateTime desc",
            "$top": PAGE_SIZE,
        }
        if cursor:
            params["$skiptoken"] = cursor

        data = await self._get(FOLDER_PATHS[folder], params)
        items: list[dict[str, Any]] = []
        for item in data.get("value", []):
            items.append({**item, SYNC_FOLDER_KEY: folder.value})

        logger.debug("outlook_page_listed", folder=folder.value, count=len(items))
        return MetadataPage(
            items=items,
            next_cursor=skiptoken_from_next_link(data.get("@odata.nextLink")),
        )

    async def fetch_body(self, message_id: str) -> MessageBody:
        """Fetch the message body and, when present, its attachment list."""
        data = await self._get(
            f"/me/messages/{message_id}",
            {"$select": "body,uniqueBody,hasAttachments"},
        )
        body = data.get("body") or {}
        content = body.get("content") or None
        is_html = (body.get("contentType") or "").lower() == "html"

        attachments: list[Attachment] = []
        if data.get("hasAttachments"):
            listing = await self._get(
                f"/me/messages/{message_id}/attachments",
                {"$select": "id,name,contentType,size"},
            )
            attachments = [
                Attachment(
                    filename=a.get("name") or "",
                    mime_type=a.get("contentType") or "application/octet-stream",
                    size=a.get("size") or 0,
                    attachment_id=a.get("id"),
                )
                for a in listing.get("value", [])
            ]

        return MessageBody(
            html_body=content if is_html else None,
            text_body=None if is_html else content,
            attachments=attachments,
        )

    def normalize(self, raw: dict[str, Any]) -> EmailMessageMeta:
        return normalize_outlook_message(raw)
