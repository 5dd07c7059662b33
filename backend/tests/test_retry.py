"""Tests for the retry policy."""

from unittest.mock import AsyncMock

import pytest

from app.exceptions import (
    ErrorKind,
    RetryExhaustedError,
    SourceNotFoundError,
    SourceRateLimitError,
    SourceTransientError,
)
from services.retry import RetryPolicy, with_retry


class FakeSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestRetryPolicy:
    def test_exponential_backoff_without_jitter(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, jitter=0.0)
        error = SourceTransientError()
        assert [policy.delay_for(n, error) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_jitter_stays_within_bound(self):
        policy = RetryPolicy(base_delay=10.0, jitter=0.1)
        delay = policy.delay_for(1, SourceTransientError())
        assert 10.0 <= delay <= 11.0

    def test_rate_limit_uses_fixed_delay(self):
        policy = RetryPolicy(rate_limit_delay=60.0)
        assert policy.delay_for(1, SourceRateLimitError(retry_after=5)) == 60.0

    def test_delay_capped(self):
        policy = RetryPolicy(base_delay=50.0, multiplier=10.0, max_delay=60.0, jitter=0.0)
        assert policy.delay_for(3, SourceTransientError()) == 60.0

    def test_from_settings(self, test_settings):
        policy = RetryPolicy.from_settings(test_settings)
        assert policy.max_attempts == test_settings.retry_max_attempts
        assert policy.rate_limit_delay == test_settings.retry_rate_limit_delay


class TestWithRetry:
    async def test_success_first_try(self):
        fn = AsyncMock(return_value="ok")
        sleep = FakeSleep()
        assert await with_retry(fn, RetryPolicy(), sleep=sleep) == "ok"
        assert fn.await_count == 1
        assert sleep.calls == []

    async def test_transient_then_success(self):
        fn = AsyncMock(side_effect=[SourceTransientError(), SourceTransientError(), "ok"])
        sleep = FakeSleep()
        result = await with_retry(fn, RetryPolicy(jitter=0.0), sleep=sleep)
        assert result == "ok"
        assert sleep.calls == [1.0, 2.0]

    async def test_not_found_is_not_retried(self):
        fn = AsyncMock(side_effect=SourceNotFoundError())
        sleep = FakeSleep()
        with pytest.raises(SourceNotFoundError):
            await with_retry(fn, RetryPolicy(), sleep=sleep)
        assert fn.await_count == 1
        assert sleep.calls == []

    async def test_exhaustion_wraps_last_error(self):
        last = SourceRateLimitError(retry_after=10)
        fn = AsyncMock(side_effect=[SourceRateLimitError(), SourceRateLimitError(), last])
        sleep = FakeSleep()
        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_retry(fn, RetryPolicy(max_attempts=3), sleep=sleep)
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert exc_info.value.kind == ErrorKind.RATE_LIMITED
        assert exc_info.value.__cause__ is last
        assert sleep.calls == [60.0, 60.0]

    async def test_unexpected_exceptions_propagate(self):
        fn = AsyncMock(side_effect=KeyError("boom"))
        with pytest.raises(KeyError):
            await with_retry(fn, RetryPolicy(), sleep=FakeSleep())

    async def test_single_attempt_policy_wraps_first_error(self):
        error = SourceTransientError()
        fn = AsyncMock(side_effect=error)
        sleep = FakeSleep()
        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_retry(fn, RetryPolicy(max_attempts=1), sleep=sleep)
        assert exc_info.value.last_error is error
        assert sleep.calls == []

    async def test_non_positive_attempts_still_calls_once(self):
        fn = AsyncMock(return_value="ok")
        assert await with_retry(fn, RetryPolicy(max_attempts=0), sleep=FakeSleep()) == "ok"
        assert fn.await_count == 1
