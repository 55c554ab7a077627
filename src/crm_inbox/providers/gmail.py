"""Gmail provider client on top of google-api-python-client.

The discovery client is blocking, so every ``execute()`` runs in a worker
thread with the configured request timeout.  Folders are expressed as Gmail
search queries; the sync window becomes an ``after:<epoch>`` term.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Any

import structlog
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from crm_inbox.domain.errors import AuthExpiredError, ProviderError, RateLimitedError
from crm_inbox.domain.models import (
    ConnectedAccount,
    EmailMessageMeta,
    MessageBody,
    MetadataPage,
    SyncWindow,
)
from crm_inbox.domain.types import Folder, Provider
from crm_inbox.providers.base import ProviderConfig
from crm_inbox.providers.mime import parse_raw_message
from crm_inbox.resilience.retry import call_with_rate_limit_retry
from crm_inbox.sync.normalizer import SYNC_FOLDER_KEY, normalize_gmail_message
from crm_inbox.timestamps import utcnow

logger = structlog.get_logger()

FOLDER_QUERIES: dict[Folder, str] = {
    Folder.INBOX: "in:inbox",
    Folder.SENT: "in:sent",
    Folder.IMPORTANT: "is:starred",
    Folder.DRAFTS: "in:drafts",
    Folder.ARCHIVE: "-in:inbox -in:sent -in:drafts -in:trash",
    Folder.TRASH: "in:trash",
}

METADATA_HEADERS = ["From", "To", "Subject", "Date"]
PAGE_SIZE = 100


def _classify_http_error(exc: HttpError) -> ProviderError:
    status = int(exc.resp.status) if exc.resp is not None else None
    message = getattr(exc, "reason", "") or str(exc)
    if status == 401:
        return AuthExpiredError(Provider.GMAIL, status, message)
    if status == 429:
        return RateLimitedError(Provider.GMAIL, status, message)
    return ProviderError(Provider.GMAIL, status, message)


def build_gmail_service(access_token: str) -> Any:
    """Build a Gmail v1 service authorized with a bare access token.

    No refresh token is attached, so an expired token surfaces as HTTP 401
    and is refreshed by the sync orchestrator.
    """
    credentials = Credentials(token=access_token)
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


class GmailClient:
    """Gmail implementation of the provider client contract.

    Args:
        service: An authorized Gmail API v1 service resource.
        config: Provider configuration (timeouts, backoff).
    """

    folders: tuple[Folder, ...] = (
        Folder.INBOX,
        Folder.SENT,
        Folder.IMPORTANT,
        Folder.DRAFTS,
        Folder.ARCHIVE,
        Folder.TRASH,
    )

    def __init__(self, service: Any, config: ProviderConfig) -> None:
        self._service = service
        self._config = config

    @classmethod
    def from_account(cls, account: ConnectedAccount, config: ProviderConfig) -> GmailClient:
        """Create a client for a connected Gmail account."""
        return cls(build_gmail_service(account.access_token.get_secret_value()), config)

    def update_access_token(self, access_token: str) -> None:
        """Rebuild the service around a refreshed access token."""
        self._service = build_gmail_service(access_token)

    async def _execute(self, request: Any) -> dict[str, Any]:
        return await call_with_rate_limit_retry(
            self._execute_once,
            request,
            backoff_seconds=self._config.rate_limit_backoff_seconds,
        )

    async def _execute_once(self, request: Any) -> dict[str, Any]:
        try:
            result: dict[str, Any] = await asyncio.wait_for(
                asyncio.to_thread(request.execute),
                timeout=self._config.request_timeout_seconds,
            )
        except HttpError as exc:
            raise _classify_http_error(exc) from exc
        except TimeoutError as exc:
            raise ProviderError(Provider.GMAIL, None, "request timed out") from exc
        except OSError as exc:
            raise ProviderError(Provider.GMAIL, None, str(exc)) from exc
        return result

    async def list_message_metadata(
        self, folder: Folder, window: SyncWindow, cursor: str | None = None
    ) -> MetadataPage:
        """List one page of message metadata in *folder*.

        Args:
            folder: The canonical folder to list.
            window: The time window; becomes an ``after:`` query term.
            cursor: ``nextPageToken`` of the previous page.

        Returns:
            A page of ``format="metadata"`` message resources, each tagged
            with the folder it was listed from.
        """
        after = int(window.start(utcnow()).timestamp())
        query = f"{FOLDER_QUERIES[folder]} after:{after}"
        params: dict[str, Any] = {"userId": "me", "q": query, "maxResults": PAGE_SIZE}
        if cursor:
            params["pageToken"] = cursor

        listing = await self._execute(self._service.users().messages().list(**params))

        items: list[dict[str, Any]] = []
        for ref in listing.get("messages", []):
            meta = await self._execute(
                self._service.users()
                .messages()
                .get(
                    userId="me",
                    id=ref["id"],
                    format="metadata",
                    metadataHeaders=METADATA_HEADERS,
                )
            )
            meta[SYNC_FOLDER_KEY] = folder.value
            items.append(meta)

        logger.debug("gmail_page_listed", folder=folder.value, count=len(items))
        return MetadataPage(items=items, next_cursor=listing.get("nextPageToken"))

    async def fetch_body(self, message_id: str) -> MessageBody:
        """Fetch the raw RFC 2822 message and decode its parts."""
        msg = await self._execute(
            self._service.users().messages().get(userId="me", id=message_id, format="raw")
        )
        raw = msg["raw"]
        raw_bytes = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4))
        return parse_raw_message(raw_bytes)

    def normalize(self, raw: dict[str, Any]) -> EmailMessageMeta:
        return normalize_gmail_message(raw)
