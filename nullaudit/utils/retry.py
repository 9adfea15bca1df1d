"""Retry logic with exponential backoff for reviewer calls."""

import asyncio
import logging
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """Transport-level failure that is worth another attempt."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class ProviderRateLimitError(RetryableError):
    """Exception for provider-side rate limit responses (HTTP 429)."""


class ServiceUnavailableError(RetryableError):
    """Exception for network, timeout and 5xx failures."""


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    ):
        """
        Initialize retry configuration.

        Args:
            max_retries: Retries after the first attempt
            base_delay: Delay in seconds before the first retry
            max_delay: Maximum delay in seconds
            exponential_base: Base for exponential backoff (2.0 = double each time)
            retryable_exceptions: Exception types that should trigger retry
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.retryable_exceptions = retryable_exceptions or (
            RetryableError,
            ConnectionError,
            asyncio.TimeoutError,
        )

    @classmethod
    def from_ms(cls, max_retries: int, retry_delay_ms: int, **kwargs) -> "RetryConfig":
        return cls(max_retries=max_retries, base_delay=retry_delay_ms / 1000.0, **kwargs)

    def calculate_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """
        Calculate delay before retry number ``attempt + 1``.

        Args:
            attempt: Failed attempt (0-indexed)
            retry_after: Optional Retry-After value in seconds

        Returns:
            Delay in seconds
        """
        if retry_after is not None:
            delay = min(retry_after, self.max_delay)
        else:
            delay = min(
                self.base_delay * (self.exponential_base ** attempt),
                self.max_delay,
            )

        return delay


async def retry_async(
    func: Callable[..., Any],
    *args,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    **kwargs
) -> Any:
    """
    Retry async function with exponential backoff.

    Retry ``k`` (1-indexed) sleeps ``base_delay * exponential_base ** (k - 1)``.

    Args:
        func: Async function to retry
        *args: Positional arguments for func
        config: Retry configuration (uses defaults if None)
        on_retry: Called with (attempt, error, delay) before each sleep
        **kwargs: Keyword arguments for func

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted, or any non-retryable exception
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt >= config.max_retries:
                logger.debug(f"Retry exhausted after {attempt + 1} attempts: {e}")
                raise

            retry_after = getattr(e, "retry_after", None)
            delay = config.calculate_delay(attempt, retry_after)

            logger.debug(
                f"Attempt {attempt + 1}/{config.max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            if on_retry is not None:
                on_retry(attempt + 1, e, delay)
            await asyncio.sleep(delay)
