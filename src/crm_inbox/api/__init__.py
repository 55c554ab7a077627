"""HTTP routes of the inbox service."""

from crm_inbox.api.routes import router, store_timeout_handler

__all__ = ["router", "store_timeout_handler"]
