"""Rate-limit retry and bounded store calls.

A provider 429 is retried exactly once after a fixed backoff; a second 429
propagates to the caller.  Foreground store reads run in a worker thread
with a time budget so an unresponsive store surfaces as an error instead of
a hang.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from crm_inbox.domain.errors import RateLimitedError, StoreTimeoutError

logger = structlog.get_logger()

T = TypeVar("T")


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before the retry attempt.

    Args:
        retry_state: Tenacity retry state with attempt info.
    """
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "rate_limited_retrying",
        api_name=getattr(exception, "provider", "unknown"),
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def rate_limit_retry(backoff_seconds: float) -> AsyncRetrying:
    """Create the retry controller for a rate-limited provider call.

    Configured with:
    - 2 attempts maximum (one retry)
    - Fixed wait of *backoff_seconds* between attempts
    - Only ``RateLimitedError`` triggers a retry
    - Original exception re-raised after exhaustion

    Args:
        backoff_seconds: Seconds to wait before the single retry.

    Returns:
        An ``AsyncRetrying`` instance; call it with the coroutine function.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(2),
        wait=wait_fixed(backoff_seconds),
        retry=retry_if_exception_type(RateLimitedError),
        before_sleep=_before_sleep_log,
        reraise=True,
    )


async def call_with_rate_limit_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    backoff_seconds: float = 1.0,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)``, retrying once on ``RateLimitedError``."""
    return await rate_limit_retry(backoff_seconds)(func, *args, **kwargs)


async def run_with_timeout(func: Callable[..., T], *args: Any, timeout: float) -> T:
    """Run a blocking store call in a worker thread with a time budget.

    Args:
        func: The blocking callable.
        *args: Positional arguments for *func*.
        timeout: Seconds before giving up.

    Returns:
        Whatever *func* returns.

    Raises:
        StoreTimeoutError: If *func* does not finish within *timeout*.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except TimeoutError as exc:
        logger.error(
            "store_call_timed_out", func=getattr(func, "__name__", "call"), timeout=timeout
        )
        raise StoreTimeoutError(f"Store operation timed out after {timeout}s") from exc
