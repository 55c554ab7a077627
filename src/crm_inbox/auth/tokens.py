"""OAuth access-token refresh for Gmail and Outlook accounts.

A refresh that cannot happen (no refresh token, LinkedIn account) or that
the token endpoint rejects raises ``ReconnectRequiredError``: the user has
to reconnect the account.
"""

from __future__ import annotations

from datetime import timedelta

import httpx
import structlog
from pydantic import SecretStr

from crm_inbox.domain.errors import ReconnectRequiredError
from crm_inbox.domain.models import ConnectedAccount, TokenSet
from crm_inbox.domain.types import Provider
from crm_inbox.providers.base import ProviderConfig
from crm_inbox.timestamps import utcnow

logger = structlog.get_logger()

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
MICROSOFT_SCOPES = "offline_access https://graph.microsoft.com/Mail.Read"


class TokenRefresher:
    """Exchange a stored refresh token for a new access token.

    Args:
        config: Provider configuration holding the OAuth client credentials.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def _request_for(
        self, account: ConnectedAccount, refresh_token: str
    ) -> tuple[str, dict[str, str]]:
        if account.provider == Provider.GMAIL:
            return GOOGLE_TOKEN_URL, {
                "client_id": self._config.google_client_id,
                "client_secret": self._config.google_client_secret.get_secret_value(),
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        return MICROSOFT_TOKEN_URL.format(tenant=self._config.microsoft_tenant), {
            "client_id": self._config.microsoft_client_id,
            "client_secret": self._config.microsoft_client_secret.get_secret_value(),
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            "scope": MICROSOFT_SCOPES,
        }

    async def refresh(self, account: ConnectedAccount) -> TokenSet:
        """Refresh the access token of *account*.

        Args:
            account: A Gmail or Outlook account with a stored refresh token.

        Returns:
            The new token set.  ``refresh_token`` is ``None`` when the
            provider did not rotate it.

        Raises:
            ReconnectRequiredError: If the account cannot be refreshed.
        """
        if account.provider not in (Provider.GMAIL, Provider.OUTLOOK):
            raise ReconnectRequiredError(account.account_email, "account has no OAuth tokens")
        if account.refresh_token is None or not account.refresh_token.get_secret_value():
            raise ReconnectRequiredError(account.account_email, "no refresh token stored")

        url, data = self._request_for(account, account.refresh_token.get_secret_value())
        try:
            async with httpx.AsyncClient(
                timeout=self._config.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, data=data)
        except httpx.TransportError as exc:
            logger.warning("token_refresh_transport_error", account_id=account.id)
            raise ReconnectRequiredError(account.account_email, str(exc)) from exc

        if not response.is_success:
            logger.warning(
                "token_refresh_rejected",
                account_id=account.id,
                provider=account.provider.value,
                status=response.status_code,
            )
            raise ReconnectRequiredError(
                account.account_email, f"token endpoint returned {response.status_code}"
            )

        payload = response.json()
        logger.info("token_refreshed", account_id=account.id, provider=account.provider.value)
        rotated = payload.get("refresh_token")
        return TokenSet(
            access_token=SecretStr(payload["access_token"]),
            refresh_token=SecretStr(rotated) if rotated else None,
            expires_at=utcnow() + timedelta(seconds=int(payload.get("expires_in", 3600))),
        )
