"""OAuth token refresh for connected email accounts."""

from crm_inbox.auth.tokens import TokenRefresher

__all__ = ["TokenRefresher"]
