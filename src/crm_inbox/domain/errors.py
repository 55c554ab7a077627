"""Domain-specific exception classes for the inbox pipeline."""

from crm_inbox.domain.types import SyncState


class InboxError(Exception):
    """Base class for all domain errors in the inbox pipeline."""


class ProviderError(InboxError):
    """Raised when an upstream provider returns a non-2xx response.

    Not retried within the same sync run; the folder or page that raised it
    is abandoned.

    Attributes:
        provider: The provider name (``gmail``, ``outlook``, ``unipile``).
        status: The upstream HTTP status, or ``None`` for transport failures.
        message: The upstream error message.
    """

    def __init__(self, provider: str, status: int | None, message: str) -> None:
        self.provider = provider
        self.status = status
        self.message = message
        super().__init__(f"{provider} request failed (status={status}): {message}")


class AuthExpiredError(ProviderError):
    """Raised on HTTP 401: the access token is invalid or expired."""


class RateLimitedError(ProviderError):
    """Raised on HTTP 429: the provider asked us to slow down."""


class ReconnectRequiredError(InboxError):
    """Raised when a token refresh is impossible or failed.

    The only fatal condition of an account sync: remaining folders are
    skipped and the user must reconnect the account.

    Attributes:
        account_email: The address of the account that needs reconnecting.
    """

    def __init__(self, account_email: str, reason: str = "") -> None:
        self.account_email = account_email
        self.reason = reason
        super().__init__(
            f"Authentication failed. Please reconnect your account: {account_email}"
        )


class InvalidTransitionError(InboxError):
    """Raised when an invalid sync state transition is attempted.

    Attributes:
        current_state: The state the machine was in when the transition was attempted.
        event: The event that was rejected.
    """

    def __init__(self, current_state: SyncState, event: str) -> None:
        self.current_state = current_state
        self.event = event
        super().__init__(f"Cannot apply event '{event}' in state '{current_state}'")


class AccountNotFoundError(InboxError):
    """Raised when a connected account id does not resolve."""


class StoreTimeoutError(InboxError):
    """Raised when a foreground store operation exceeds its time budget."""
