"""Provider clients for Gmail, Outlook and LinkedIn (Unipile)."""

from crm_inbox.providers.base import (
    HttpProviderClient,
    ProviderClient,
    ProviderConfig,
    raise_for_provider_status,
)
from crm_inbox.providers.factory import create_provider_client
from crm_inbox.providers.gmail import GmailClient
from crm_inbox.providers.linkedin import LinkedInClient
from crm_inbox.providers.outlook import OutlookClient

__all__ = [
    "GmailClient",
    "HttpProviderClient",
    "LinkedInClient",
    "OutlookClient",
    "ProviderClient",
    "ProviderConfig",
    "create_provider_client",
    "raise_for_provider_status",
]
