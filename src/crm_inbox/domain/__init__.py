"""Domain types, models, and errors for the inbox pipeline."""

from crm_inbox.domain.errors import (
    AccountNotFoundError,
    AuthExpiredError,
    InboxError,
    InvalidTransitionError,
    ProviderError,
    RateLimitedError,
    ReconnectRequiredError,
    StoreTimeoutError,
)
from crm_inbox.domain.models import (
    Attachment,
    ConnectedAccount,
    ConversationRecord,
    Correspondent,
    EmailMessageMeta,
    IngestContext,
    LinkedInCounterparty,
    LinkedInMessageMeta,
    MessageBody,
    MessageRecord,
    MetadataPage,
    NormalizedMessage,
    SyncStatusRecord,
    SyncWindow,
    TokenSet,
)
from crm_inbox.domain.types import (
    OUTBOUND_FOLDERS,
    PROVIDER_CHANNELS,
    Channel,
    ConversationStatus,
    Folder,
    Provider,
    SyncMode,
    SyncState,
    WorkQueueFilter,
    is_outbound_folder,
)

__all__ = [
    "OUTBOUND_FOLDERS",
    "PROVIDER_CHANNELS",
    "AccountNotFoundError",
    "Attachment",
    "AuthExpiredError",
    "Channel",
    "ConnectedAccount",
    "ConversationRecord",
    "ConversationStatus",
    "Correspondent",
    "EmailMessageMeta",
    "Folder",
    "InboxError",
    "IngestContext",
    "InvalidTransitionError",
    "LinkedInCounterparty",
    "LinkedInMessageMeta",
    "MessageBody",
    "MessageRecord",
    "MetadataPage",
    "NormalizedMessage",
    "Provider",
    "ProviderError",
    "RateLimitedError",
    "ReconnectRequiredError",
    "StoreTimeoutError",
    "SyncMode",
    "SyncState",
    "SyncStatusRecord",
    "SyncWindow",
    "TokenSet",
    "WorkQueueFilter",
    "is_outbound_folder",
]
