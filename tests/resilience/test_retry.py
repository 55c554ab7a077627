"""Tests for rate-limit retry and bounded store calls."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock

import pytest

from crm_inbox.domain.errors import ProviderError, RateLimitedError, StoreTimeoutError
from crm_inbox.resilience.retry import call_with_rate_limit_retry, run_with_timeout


class TestCallWithRateLimitRetry:
    """A 429 is retried exactly once."""

    @pytest.mark.anyio()
    async def test_success_first_try(self) -> None:
        func = AsyncMock(return_value="ok")
        assert await call_with_rate_limit_retry(func, "a", backoff_seconds=0) == "ok"
        func.assert_awaited_once_with("a")

    @pytest.mark.anyio()
    async def test_retries_once_after_rate_limit(self) -> None:
        func = AsyncMock(side_effect=[RateLimitedError("outlook", 429, "slow down"), "ok"])
        assert await call_with_rate_limit_retry(func, backoff_seconds=0) == "ok"
        assert func.await_count == 2

    @pytest.mark.anyio()
    async def test_second_rate_limit_propagates(self) -> None:
        func = AsyncMock(side_effect=RateLimitedError("outlook", 429, "slow down"))
        with pytest.raises(RateLimitedError):
            await call_with_rate_limit_retry(func, backoff_seconds=0)
        assert func.await_count == 2

    @pytest.mark.anyio()
    async def test_other_provider_errors_not_retried(self) -> None:
        func = AsyncMock(side_effect=ProviderError("gmail", 500, "backend"))
        with pytest.raises(ProviderError):
            await call_with_rate_limit_retry(func, backoff_seconds=0)
        assert func.await_count == 1


class TestRunWithTimeout:
    """Blocking store calls run in a thread with a time budget."""

    @pytest.mark.anyio()
    async def test_returns_result(self) -> None:
        assert await run_with_timeout(max, 3, 7, timeout=1.0) == 7

    @pytest.mark.anyio()
    async def test_timeout_raises_store_timeout(self) -> None:
        with pytest.raises(StoreTimeoutError, match="timed out"):
            await run_with_timeout(time.sleep, 0.5, timeout=0.01)
