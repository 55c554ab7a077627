"""SQLite persistence for accounts, conversations, messages and sync status."""

from crm_inbox.store.accounts import AccountStore
from crm_inbox.store.conversations import ConversationStore
from crm_inbox.store.messages import MessageStore
from crm_inbox.store.schema import init_inbox_db, init_inbox_tables
from crm_inbox.store.sync_status import SyncProgress, SyncStatusStore
from crm_inbox.store.user_state import UserState, UserStateStore

__all__ = [
    "AccountStore",
    "ConversationStore",
    "MessageStore",
    "SyncProgress",
    "SyncStatusStore",
    "UserState",
    "UserStateStore",
    "init_inbox_db",
    "init_inbox_tables",
]
