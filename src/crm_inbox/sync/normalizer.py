"""Provider payload -> channel-neutral message metadata.

Pure functions, one per provider.  Each takes the raw record a provider
client listed and returns an ``EmailMessageMeta`` or ``LinkedInMessageMeta``;
nothing past this module sees provider-shaped dicts.

Folder names are normalized with a fixed substring table per provider so
that e.g. Outlook's ``SentItems`` and Gmail's ``SENT`` both become ``sent``.
"""

from __future__ import annotations

import html
from datetime import UTC, datetime
from email.utils import getaddresses, parsedate_to_datetime
from typing import Any

from crm_inbox.domain.models import (
    Attachment,
    Correspondent,
    EmailMessageMeta,
    LinkedInCounterparty,
    LinkedInMessageMeta,
    NormalizedMessage,
)
from crm_inbox.domain.types import Folder, Provider
from crm_inbox.timestamps import from_epoch_ms, parse_ts, utcnow

# Key under which provider clients record the folder a record was listed from.
SYNC_FOLDER_KEY = "syncFolder"

LINKEDIN_PROFILE_URL = "https://www.linkedin.com/in/{public_identifier}"
LINKEDIN_FALLBACK_NAME = "LinkedIn Contact"

# Checked in order; first substring hit wins.
FOLDER_ALIASES: dict[Provider, tuple[tuple[str, Folder], ...]] = {
    Provider.GMAIL: (
        ("trash", Folder.TRASH),
        ("draft", Folder.DRAFTS),
        ("sent", Folder.SENT),
        ("starred", Folder.IMPORTANT),
        ("important", Folder.IMPORTANT),
        ("all mail", Folder.ARCHIVE),
        ("archive", Folder.ARCHIVE),
        ("inbox", Folder.INBOX),
    ),
    Provider.OUTLOOK: (
        ("deleted", Folder.TRASH),
        ("trash", Folder.TRASH),
        ("sentitems", Folder.SENT),
        ("sent", Folder.SENT),
        ("draft", Folder.DRAFTS),
        ("archive", Folder.ARCHIVE),
        ("flagged", Folder.IMPORTANT),
        ("important", Folder.IMPORTANT),
        ("inbox", Folder.INBOX),
    ),
    Provider.UNIPILE: (
        ("archive", Folder.ARCHIVE),
        ("sent", Folder.SENT),
        ("inbox", Folder.INBOX),
    ),
}

# Gmail system labels in the order they decide a message's folder.
_GMAIL_LABEL_PRIORITY = ("TRASH", "DRAFT", "SENT", "INBOX", "STARRED")


def normalize_folder(provider: Provider | str, raw_folder: str | None) -> str:
    """Map a provider folder name to a canonical folder.

    Args:
        provider: The provider the folder name came from.
        raw_folder: The provider's folder or label name (any case).

    Returns:
        A ``Folder`` value, or the lower-cased input when no alias matches.
        ``inbox`` for empty input.  Never raises.
    """
    if not raw_folder:
        return Folder.INBOX
    lowered = raw_folder.strip().lower()
    for alias, folder in FOLDER_ALIASES.get(provider, ()):
        if alias in lowered:
            return folder
    return lowered


def parse_correspondent(value: str | None) -> Correspondent:
    """Parse an address header such as ``"Jane Doe <jane@example.com>"``.

    The name falls back to the address when the header carries none.
    """
    if not value:
        return Correspondent()
    pairs = [(name, addr) for name, addr in getaddresses([value]) if addr or name]
    if not pairs:
        return Correspondent()
    name, addr = pairs[0]
    addr = addr.strip()
    return Correspondent(name=name.strip() or addr, email=addr)


def _gmail_folder(raw: dict[str, Any]) -> str:
    if raw.get(SYNC_FOLDER_KEY):
        return normalize_folder(Provider.GMAIL, raw[SYNC_FOLDER_KEY])
    labels = set(raw.get("labelIds") or [])
    for label in _GMAIL_LABEL_PRIORITY:
        if label in labels:
            return normalize_folder(Provider.GMAIL, label)
    return Folder.ARCHIVE


def _gmail_timestamp(raw: dict[str, Any], headers: dict[str, str]) -> datetime:
    if raw.get("internalDate"):
        return from_epoch_ms(raw["internalDate"])
    if headers.get("date"):
        try:
            parsed = parsedate_to_datetime(headers["date"])
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        except (TypeError, ValueError):
            pass
    return utcnow()


def normalize_gmail_message(raw: dict[str, Any]) -> EmailMessageMeta:
    """Normalize a Gmail ``users.messages.get(format="metadata")`` resource."""
    headers = {
        h.get("name", "").lower(): h.get("value", "")
        for h in (raw.get("payload") or {}).get("headers", [])
    }
    return EmailMessageMeta(
        provider=Provider.GMAIL,
        provider_message_id=raw["id"],
        provider_thread_id=raw.get("threadId") or raw["id"],
        sender=parse_correspondent(headers.get("from")),
        recipient=parse_correspondent(headers.get("to")),
        subject=headers.get("subject", ""),
        snippet=html.unescape(raw.get("snippet", "")),
        timestamp=_gmail_timestamp(raw, headers),
        folder=_gmail_folder(raw),
    )


def _graph_address(entry: dict[str, Any] | None) -> Correspondent:
    address = (entry or {}).get("emailAddress") or {}
    email = (address.get("address") or "").strip()
    return Correspondent(name=(address.get("name") or "").strip() or email, email=email)


def normalize_outlook_message(raw: dict[str, Any]) -> EmailMessageMeta:
    """Normalize a Microsoft Graph message resource."""
    recipients = raw.get("toRecipients") or []
    timestamp = parse_ts(raw.get("receivedDateTime") or raw.get("sentDateTime")) or utcnow()
    return EmailMessageMeta(
        provider=Provider.OUTLOOK,
        provider_message_id=raw["id"],
        provider_thread_id=raw.get("conversationId") or raw["id"],
        sender=_graph_address(raw.get("from") or raw.get("sender")),
        recipient=_graph_address(recipients[0] if recipients else None),
        subject=raw.get("subject") or "",
        snippet=raw.get("bodyPreview") or "",
        timestamp=timestamp,
        folder=normalize_folder(Provider.OUTLOOK, raw.get(SYNC_FOLDER_KEY)),
    )


def is_truthy_flag(value: Any) -> bool:
    """Unipile encodes booleans as ``true``, ``1`` or ``"1"``."""
    return value is True or value == 1 or value == "1" or value == "true"


def unipile_attachment(raw: dict[str, Any]) -> Attachment:
    """Map a Unipile attachment object to attachment metadata."""
    return Attachment(
        filename=raw.get("file_name") or raw.get("name") or "",
        mime_type=raw.get("mimetype") or raw.get("mime_type") or "application/octet-stream",
        size=raw.get("file_size") or raw.get("size") or 0,
        attachment_id=raw.get("id"),
    )


def linkedin_counterparty(attendee: dict[str, Any] | None) -> LinkedInCounterparty:
    """Build the counterparty identity from a Unipile chat attendee."""
    if not attendee:
        return LinkedInCounterparty()
    public_identifier = attendee.get("public_identifier")
    name = (
        attendee.get("name")
        or attendee.get("display_name")
        or public_identifier
        or LINKEDIN_FALLBACK_NAME
    )
    url = attendee.get("profile_url")
    if not url and public_identifier:
        url = LINKEDIN_PROFILE_URL.format(public_identifier=public_identifier)
    return LinkedInCounterparty(
        name=name,
        attendee_id=attendee.get("provider_id") or attendee.get("id"),
        linkedin_url=url,
    )


def normalize_linkedin_message(raw: dict[str, Any]) -> LinkedInMessageMeta:
    """Normalize a flattened Unipile ``{chat, attendee, message}`` record."""
    message = raw["message"]
    chat = raw.get("chat") or {}
    counterparty = linkedin_counterparty(raw.get("attendee"))
    is_sender = is_truthy_flag(message.get("is_sender"))
    timestamp = (
        parse_ts(message.get("timestamp") or message.get("datetime") or message.get("date"))
        or utcnow()
    )
    return LinkedInMessageMeta(
        provider_message_id=message["id"],
        chat_id=message.get("chat_id") or chat["id"],
        counterparty=counterparty,
        sender_attendee_id=message.get("sender_id") or message.get("sender_attendee_id"),
        sender_name=None if is_sender else counterparty.name,
        text=message.get("text") or "",
        timestamp=timestamp,
        is_sender=is_sender,
        attachments=[unipile_attachment(a) for a in message.get("attachments") or []],
    )


def normalize_message(provider: Provider, raw: dict[str, Any]) -> NormalizedMessage:
    """Dispatch to the provider's normalizer."""
    if provider == Provider.GMAIL:
        return normalize_gmail_message(raw)
    if provider == Provider.OUTLOOK:
        return normalize_outlook_message(raw)
    return normalize_linkedin_message(raw)

