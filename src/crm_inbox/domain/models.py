"""Pydantic v2 models for the inbox domain.

Normalized messages are frozen and form a discriminated union on
``channel``: nothing downstream of the normalizer sees provider payloads.
Store records mirror the table rows in ``crm_inbox.store.schema``.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from crm_inbox.domain.types import Channel, Folder, Provider, SyncState, is_outbound_folder


class Correspondent(BaseModel):
    """A name/address pair taken from an email header."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    email: str = ""


class EmailMessageMeta(BaseModel):
    """Channel-neutral metadata of one Gmail or Outlook message."""

    model_config = ConfigDict(frozen=True)

    channel: Literal["email"] = "email"
    provider: Provider
    provider_message_id: str
    provider_thread_id: str
    sender: Correspondent
    recipient: Correspondent
    subject: str = ""
    snippet: str = ""
    timestamp: datetime
    folder: str = Folder.INBOX

    @property
    def is_from_lead(self) -> bool:
        """True unless the message sits in an outbound folder."""
        return not is_outbound_folder(self.folder)

    @property
    def counterparty(self) -> Correspondent:
        """The non-owning party: recipient of sent mail, sender otherwise."""
        return self.sender if self.is_from_lead else self.recipient

    @property
    def thread_key(self) -> str:
        return self.provider_thread_id


class Attachment(BaseModel):
    """Attachment metadata stored alongside a fetched body."""

    model_config = ConfigDict(frozen=True)

    filename: str = ""
    mime_type: str = "application/octet-stream"
    size: int = 0
    attachment_id: str | None = None


class LinkedInCounterparty(BaseModel):
    """The other attendee of a LinkedIn chat."""

    model_config = ConfigDict(frozen=True)

    name: str = "LinkedIn Contact"
    attendee_id: str | None = None
    linkedin_url: str | None = None


class LinkedInMessageMeta(BaseModel):
    """Channel-neutral metadata of one LinkedIn direct message."""

    model_config = ConfigDict(frozen=True)

    channel: Literal["linkedin"] = "linkedin"
    provider: Provider = Provider.UNIPILE
    provider_message_id: str
    chat_id: str
    counterparty: LinkedInCounterparty
    sender_attendee_id: str | None = None
    sender_name: str | None = None
    text: str = ""
    timestamp: datetime
    is_sender: bool = False
    attachments: list[Attachment] = Field(default_factory=list)
    folder: str = Folder.INBOX

    @property
    def is_from_lead(self) -> bool:
        """True when the other party wrote the message."""
        return not self.is_sender

    @property
    def thread_key(self) -> str:
        return self.chat_id


NormalizedMessage = Annotated[
    EmailMessageMeta | LinkedInMessageMeta,
    Field(discriminator="channel"),
]


class MessageBody(BaseModel):
    """Full content of a message, fetched lazily."""

    model_config = ConfigDict(frozen=True)

    html_body: str | None = None
    text_body: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)


class SyncWindow(BaseModel):
    """Time window of a metadata listing.

    Exactly one of ``days_back`` (initial sync) or ``since`` (incremental
    sync from the account watermark) must be set.
    """

    model_config = ConfigDict(frozen=True)

    days_back: int | None = None
    since: datetime | None = None

    @model_validator(mode="after")
    def exactly_one_bound(self) -> SyncWindow:
        """Reject windows with both or neither bound."""
        if (self.days_back is None) == (self.since is None):
            raise ValueError("SyncWindow needs exactly one of days_back or since")
        if self.days_back is not None and self.days_back <= 0:
            raise ValueError("days_back must be positive")
        return self

    def start(self, now: datetime) -> datetime:
        """Return the lower bound of the window relative to *now*."""
        if self.since is not None:
            return self.since
        return now - timedelta(days=self.days_back or 0)


class MetadataPage(BaseModel):
    """One page of raw provider records plus the cursor for the next page."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: str | None = None


class TokenSet(BaseModel):
    """Result of an OAuth token refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: SecretStr
    refresh_token: SecretStr | None = None
    expires_at: datetime | None = None


class ConnectedAccount(BaseModel):
    """A mailbox or LinkedIn account connected to a workspace."""

    id: str
    workspace_id: str
    user_id: str | None = None
    channel: Channel
    provider: Provider
    account_email: str = ""
    access_token: SecretStr = SecretStr("")
    refresh_token: SecretStr | None = None
    token_expires_at: datetime | None = None
    unipile_account_id: str | None = None
    is_active: bool = True
    last_synced_at: datetime | None = None


class IngestContext(BaseModel):
    """Ownership of messages being ingested."""

    model_config = ConfigDict(frozen=True)

    workspace_id: str
    account_id: str


class ConversationRecord(BaseModel):
    """A stored conversation row."""

    id: str
    workspace_id: str
    channel: Channel
    provider: Provider
    thread_key: str
    counterparty_key: str = ""
    account_id: str | None = None
    sender_name: str = ""
    sender_email: str | None = None
    sender_linkedin_url: str | None = None
    sender_attendee_id: str | None = None
    subject: str | None = None
    assigned_to: str | None = None
    custom_stage_id: str | None = None
    stage_assigned_at: datetime | None = None
    status: str = "new"
    is_read: bool = False
    is_favorite: bool = False
    last_message_at: datetime | None = None
    preview: str | None = None
    created_at: datetime | None = None


class MessageRecord(BaseModel):
    """A stored message row."""

    id: str
    conversation_id: str
    workspace_id: str
    channel: Channel
    provider_message_id: str
    provider_thread_id: str | None = None
    sender_name: str | None = None
    sender_email: str | None = None
    sender_attendee_id: str | None = None
    content: str = ""
    html_body: str | None = None
    text_body: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    body_fetched_at: datetime | None = None
    body_fetch_error: str | None = None
    is_from_lead: bool
    provider_folder: str | None = None
    created_at: datetime


class SyncStatusRecord(BaseModel):
    """The stored status of the latest sync run of an account."""

    workspace_id: str
    account_id: str
    status: SyncState
    last_synced_at: datetime | None = None
    sync_error: str | None = None
    updated_at: datetime | None = None
