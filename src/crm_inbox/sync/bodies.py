"""On-demand retrieval of full message bodies.

Sync stores metadata and a snippet only.  The first time a message is
viewed its body is fetched from the provider and stored; a failed fetch is
stamped too, so the provider is asked at most once per message.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from crm_inbox.domain.errors import AccountNotFoundError
from crm_inbox.domain.models import ConnectedAccount, MessageRecord
from crm_inbox.providers.base import ProviderClient
from crm_inbox.store.accounts import AccountStore
from crm_inbox.store.conversations import ConversationStore
from crm_inbox.store.messages import MessageStore
from crm_inbox.timestamps import utcnow

logger = structlog.get_logger()

ClientFactory = Callable[[ConnectedAccount], ProviderClient]


class LazyBodyFetcher:
    """Fill in message bodies the first time they are needed.

    Args:
        messages: The message store.
        conversations: The conversation store (owning account lookup).
        accounts: The connected account store.
        client_factory: Builds a provider client for an account.
    """

    def __init__(
        self,
        messages: MessageStore,
        conversations: ConversationStore,
        accounts: AccountStore,
        client_factory: ClientFactory,
    ) -> None:
        self._messages = messages
        self._conversations = conversations
        self._accounts = accounts
        self._client_factory = client_factory

    def _account_for(self, record: MessageRecord) -> ConnectedAccount:
        conversation = self._conversations.get(record.conversation_id)
        account_id = conversation.account_id if conversation is not None else None
        account = self._accounts.get(account_id) if account_id else None
        if account is None:
            raise AccountNotFoundError(
                f"No connected account for conversation {record.conversation_id}"
            )
        return account

    async def _fetch(
        self, record: MessageRecord, clients: dict[str, ProviderClient]
    ) -> MessageRecord:
        if record.body_fetched_at is not None:
            return record

        try:
            account = self._account_for(record)
            if account.id not in clients:
                clients[account.id] = self._client_factory(account)
            body = await clients[account.id].fetch_body(record.provider_message_id)
        except Exception as exc:
            logger.warning(
                "body_fetch_failed",
                message_id=record.id,
                provider_message_id=record.provider_message_id,
                error=str(exc),
            )
            self._messages.mark_body_failed(record.id, str(exc) or type(exc).__name__, utcnow())
        else:
            self._messages.save_body(record.id, body, utcnow())

        refreshed = self._messages.get(record.id)
        return refreshed if refreshed is not None else record

    async def ensure_body(self, message_id: str) -> MessageRecord:
        """Return the message with its body, fetching it if never fetched.

        Raises:
            LookupError: If no message has *message_id*.
        """
        record = self._messages.get(message_id)
        if record is None:
            raise LookupError(f"Message not found: {message_id}")
        return await self._fetch(record, {})

    async def ensure_conversation_bodies(self, conversation_id: str) -> list[MessageRecord]:
        """Fetch missing bodies for every message of a conversation, oldest first."""
        clients: dict[str, ProviderClient] = {}
        return [
            await self._fetch(record, clients)
            for record in self._messages.list_for_conversation(conversation_id)
        ]
