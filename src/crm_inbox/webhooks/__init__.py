"""Inbound provider webhooks."""

from crm_inbox.webhooks.unipile import router, verify_signature

__all__ = ["router", "verify_signature"]
