from unittest.mock import AsyncMock, patch

import pytest

from helpers.defensive_retry import (
    RetryConfig,
    _delay_for,
    is_retryable_error,
    retry_async,
)
from utils.errors import (
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    RemoteError,
    TransportError,
)

NO_WAIT = RetryConfig(max_attempts=3, base_delay=0, jitter=False)


class TestRetryConfig:
    def test_exponential_delay_is_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)

        assert [config.calculate_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_a_quarter(self):
        config = RetryConfig(base_delay=4.0, jitter=True)

        for _ in range(20):
            assert 3.0 <= config.calculate_delay(0) <= 5.0


class TestRetryableErrors:
    @pytest.mark.parametrize(
        "error",
        [TransportError("x"), RateLimitedError("x"), ConnectionError(), TimeoutError()],
    )
    def test_retryable(self, error):
        assert is_retryable_error(error)

    @pytest.mark.parametrize(
        "error",
        [NotFoundError("x"), ForbiddenError("x"), RemoteError("x"), ValueError()],
    )
    def test_not_retryable(self, error):
        assert not is_retryable_error(error)

    def test_rate_limit_delay_honours_retry_after(self):
        error = RateLimitedError("slow down", retry_after=3.5)

        assert _delay_for(error, NO_WAIT, 0) == 3.5


class TestRetryAsync:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failure(self):
        func = AsyncMock(side_effect=[TransportError("503"), "ok"])

        assert await retry_async(func, 1, config=NO_WAIT) == "ok"
        assert func.await_count == 2
        func.assert_awaited_with(1)

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        func = AsyncMock(side_effect=NotFoundError("gone"))

        with pytest.raises(NotFoundError):
            await retry_async(func, config=NO_WAIT)
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_last_error(self):
        func = AsyncMock(side_effect=[TransportError("1"), TransportError("2"), TransportError("3")])

        with pytest.raises(TransportError, match="3"):
            await retry_async(func, config=NO_WAIT)
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_waits_for_rate_limit(self):
        func = AsyncMock(side_effect=[RateLimitedError("429", retry_after=2.0), None])

        with patch("helpers.defensive_retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await retry_async(func, config=NO_WAIT)

        sleep.assert_awaited_once_with(2.0)
