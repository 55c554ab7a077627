"""Domain enumerations and folder vocabulary for the inbox pipeline."""

from enum import StrEnum


class Channel(StrEnum):
    """Channel families a conversation can belong to."""

    EMAIL = "email"
    LINKEDIN = "linkedin"


class Provider(StrEnum):
    """Upstream providers behind a connected account."""

    GMAIL = "gmail"
    OUTLOOK = "outlook"
    UNIPILE = "unipile"


class Folder(StrEnum):
    """Canonical mailbox folders every provider folder normalizes to."""

    INBOX = "inbox"
    SENT = "sent"
    TRASH = "trash"
    ARCHIVE = "archive"
    DRAFTS = "drafts"
    IMPORTANT = "important"


class ConversationStatus(StrEnum):
    """CRM lifecycle of a conversation."""

    NEW = "new"
    ENGAGED = "engaged"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    NOT_INTERESTED = "not_interested"


class SyncState(StrEnum):
    """States of a single account sync run."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class SyncMode(StrEnum):
    """Whether a run starts from scratch or from the account watermark."""

    INITIAL = "initial"
    INCREMENTAL = "incremental"


class WorkQueueFilter(StrEnum):
    """Filters accepted by the work queue view."""

    ALL = "all"
    PENDING = "pending"
    OVERDUE = "overdue"
    IDLE = "idle"


# Folders whose messages were written by the account holder.
OUTBOUND_FOLDERS: frozenset[str] = frozenset({Folder.SENT, Folder.DRAFTS})

# Provider of each channel family.
PROVIDER_CHANNELS: dict[Provider, Channel] = {
    Provider.GMAIL: Channel.EMAIL,
    Provider.OUTLOOK: Channel.EMAIL,
    Provider.UNIPILE: Channel.LINKEDIN,
}


def is_outbound_folder(folder: str) -> bool:
    """Return True when messages in *folder* were sent by the account holder.

    Args:
        folder: A normalized folder name.

    Returns:
        ``True`` for ``sent`` and ``drafts``, ``False`` for everything else.
    """
    return folder in OUTBOUND_FOLDERS
