#helpers/defensive_retry.py

"""
Retry with exponential backoff for idempotent remote calls.

Only cleanup-style operations (deleting an empty temp channel) go through
here; user-initiated creations surface their first failure immediately.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from utils.errors import RateLimitedError, RemoteError
from utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt number (0-indexed)."""
        delay = self.base_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            # ±25% jitter to prevent thundering herd
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0, delay)


# Predefined retry configurations for different use cases
RETRY_CONFIGS = {
    "cleanup": RetryConfig(
        max_attempts=4,
        base_delay=1.0,
        max_delay=16.0,
        exponential_base=2.0,
        jitter=True,
    ),
    "quick": RetryConfig(
        max_attempts=2,
        base_delay=0.1,
        max_delay=1.0,
        exponential_base=2.0,
        jitter=False,
    ),
}


def is_retryable_error(error: BaseException) -> bool:
    """Transport failures and rate limits are retryable; everything else is not."""
    if isinstance(error, RemoteError):
        return error.retryable
    return isinstance(error, (ConnectionError, asyncio.TimeoutError))


def _delay_for(error: BaseException, config: RetryConfig, attempt: int) -> float:
    delay = config.calculate_delay(attempt)
    if isinstance(error, RateLimitedError) and error.retry_after:
        # Never retry earlier than the server asked
        delay = max(delay, float(error.retry_after))
    return delay


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    config_name: str = "cleanup",
    **kwargs: Any,
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: The async function to retry
        *args: Arguments to pass to func
        config: Custom retry configuration
        config_name: Name of predefined config to use if config is None
        **kwargs: Keyword arguments to pass to func

    Returns:
        The result of the successful function call

    Raises:
        The last exception if all retries are exhausted, or the first
        non-retryable exception
    """
    if config is None:
        config = RETRY_CONFIGS.get(config_name, RETRY_CONFIGS["cleanup"])

    name = getattr(func, "__name__", repr(func))

    for attempt in range(config.max_attempts):
        try:
            result = await func(*args, **kwargs)
            if attempt > 0:
                logger.info(f"{name} succeeded on attempt {attempt + 1}")
            return result

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt >= config.max_attempts - 1:
                logger.error(
                    f"All {config.max_attempts} attempts failed for {name}: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            delay = _delay_for(e, config, attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_attempts} failed for {name}: "
                f"{type(e).__name__}: {e}; retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("retry_async called with max_attempts < 1")
