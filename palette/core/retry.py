"""
Retry utilities with exponential backoff.

Every external call (structured generation, media jobs) goes through
these helpers. After failed attempt n (1-indexed) the executor waits
base_delay * 2 ** (n - 1) seconds; after the final attempt the last
exception propagates unchanged.
"""

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from palette.core.logging_config import get_logger

logger = get_logger("core.retry")

T = TypeVar("T")

RetryHook = Callable[[Exception, int], None]


@dataclass
class RetryConfig:
    """How many times to attempt a call and how long to wait between attempts."""
    max_attempts: int = 3  # including the first call
    base_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: Optional[float] = None
    retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,)

    @classmethod
    def from_settings(cls, settings) -> 'RetryConfig':
        """Build from the RetrySettings section of PaletteConfig."""
        return cls(max_attempts=settings.max_attempts, base_delay=settings.base_delay)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after `attempt` (1-indexed) has failed."""
    delay = config.base_delay * config.exponential_base ** (attempt - 1)
    if config.max_delay is not None:
        return min(delay, config.max_delay)
    return delay


async def retry_async_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig = None,
    on_retry: Optional[RetryHook] = None,
    **kwargs: Any
) -> T:
    """
    Await func(*args, **kwargs), retrying on the configured exceptions.

    Args:
        func: Coroutine function to call
        config: Retry configuration (defaults to RetryConfig())
        on_retry: Called with (exception, attempt) before each wait

    Returns:
        Whatever func returns on its first successful attempt
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)
    name = getattr(func, "__qualname__", repr(func))

    attempt = 1
    while True:
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt >= attempts:
                logger.error(f"{name}: giving up after {attempts} attempt(s): {e}")
                raise

            delay = calculate_delay(attempt, config)
            logger.warning(f"{name}: attempt {attempt}/{attempts} failed ({e}); next try in {delay:.2f}s")
            if on_retry:
                on_retry(e, attempt)
            await asyncio.sleep(delay)
            attempt += 1


def async_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    on_retry: Optional[RetryHook] = None
) -> Callable:
    """Decorator form of retry_async_call."""
    config = RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        retryable_exceptions=retryable_exceptions
    )

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_async_call(func, *args, config=config, on_retry=on_retry, **kwargs)
        return wrapper
    return decorator
