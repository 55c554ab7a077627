"""Build the provider client matching a connected account."""

from __future__ import annotations

from crm_inbox.domain.models import ConnectedAccount
from crm_inbox.domain.types import Provider
from crm_inbox.providers.base import ProviderClient, ProviderConfig
from crm_inbox.providers.gmail import GmailClient
from crm_inbox.providers.linkedin import LinkedInClient
from crm_inbox.providers.outlook import OutlookClient


def create_provider_client(account: ConnectedAccount, config: ProviderConfig) -> ProviderClient:
    """Return a fresh client for *account*, one per sync invocation.

    Raises:
        ValueError: If the account's provider is not supported.
    """
    if account.provider == Provider.GMAIL:
        return GmailClient.from_account(account, config)
    if account.provider == Provider.OUTLOOK:
        return OutlookClient.from_account(account, config)
    if account.provider == Provider.UNIPILE:
        return LinkedInClient.from_account(account, config)
    raise ValueError(f"Unsupported provider: {account.provider}")
