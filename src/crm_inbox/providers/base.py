"""Provider client contract, configuration and shared HTTP plumbing.

Every provider client lists message metadata per folder in pages, fetches
full bodies on demand, and normalizes its raw records.  HTTP failures are
classified the same way for every provider: 401 means the access token
expired, 429 means rate limited, anything else non-2xx is a provider error.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, SecretStr

from crm_inbox.config import Settings
from crm_inbox.domain.errors import AuthExpiredError, ProviderError, RateLimitedError
from crm_inbox.domain.models import MessageBody, MetadataPage, NormalizedMessage, SyncWindow
from crm_inbox.domain.types import Folder
from crm_inbox.resilience.retry import call_with_rate_limit_retry

logger = structlog.get_logger()


class ProviderConfig(BaseModel):
    """Explicit configuration handed to every provider client."""

    model_config = ConfigDict(frozen=True)

    request_timeout_seconds: float = 30.0
    rate_limit_backoff_seconds: float = 1.0
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")
    microsoft_client_id: str = ""
    microsoft_client_secret: SecretStr = SecretStr("")
    microsoft_tenant: str = "common"
    unipile_base_url: str = "https://api1.unipile.com:13111"
    unipile_api_key: SecretStr = SecretStr("")

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderConfig:
        """Build the provider configuration from application settings."""
        return cls(
            request_timeout_seconds=settings.request_timeout_seconds,
            rate_limit_backoff_seconds=settings.rate_limit_backoff_seconds,
            google_client_id=settings.google_client_id,
            google_client_secret=settings.google_client_secret,
            microsoft_client_id=settings.microsoft_client_id,
            microsoft_client_secret=settings.microsoft_client_secret,
            microsoft_tenant=settings.microsoft_tenant,
            unipile_base_url=settings.unipile_base_url,
            unipile_api_key=settings.unipile_api_key,
        )


@runtime_checkable
class ProviderClient(Protocol):
    """What the sync orchestrator and body fetcher need from a provider."""

    folders: tuple[Folder, ...]

    async def list_message_metadata(
        self, folder: Folder, window: SyncWindow, cursor: str | None = None
    ) -> MetadataPage: ...

    async def fetch_body(self, message_id: str) -> MessageBody: ...

    def normalize(self, raw: dict[str, Any]) -> NormalizedMessage: ...

    def update_access_token(self, access_token: str) -> None: ...


def _error_message(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        for key in ("message", "detail", "title", "error_description", "error"):
            if data.get(key):
                return str(data[key])
    return response.reason_phrase


def raise_for_provider_status(provider: str, response: httpx.Response) -> None:
    """Raise the domain error matching a non-2xx provider response.

    Raises:
        AuthExpiredError: On HTTP 401.
        RateLimitedError: On HTTP 429.
        ProviderError: On any other non-2xx status.
    """
    if response.is_success:
        return
    status = response.status_code
    message = _error_message(response)
    if status == 401:
        raise AuthExpiredError(provider, status, message)
    if status == 429:
        raise RateLimitedError(provider, status, message)
    raise ProviderError(provider, status, message)


class HttpProviderClient:
    """Shared request handling for providers spoken to over httpx.

    Each call opens a short-lived ``httpx.AsyncClient`` with the configured
    timeout, classifies the response and retries a single 429.
    """

    provider_name: str = "http"

    def __init__(
        self,
        base_url: str,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._config = config
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return await call_with_rate_limit_retry(
            self._get_once,
            path,
            params,
            backoff_seconds=self._config.rate_limit_backoff_seconds,
        )

    async def _get_once(self, path: str, params: dict[str, Any] | None) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._config.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(path, params=params, headers=self._headers())
        except httpx.TransportError as exc:
            logger.warning("provider_transport_error", provider=self.provider_name, path=path)
            raise ProviderError(self.provider_name, None, str(exc) or type(exc).__name__) from exc

        raise_for_provider_status(self.provider_name, response)
        result: dict[str, Any] = response.json()
        return result
