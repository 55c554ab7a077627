"""Retry helpers for provider calls."""

from crm_inbox.resilience.retry import (
    call_with_rate_limit_retry,
    rate_limit_retry,
    run_with_timeout,
)

__all__ = ["call_with_rate_limit_retry", "rate_limit_retry", "run_with_timeout"]
