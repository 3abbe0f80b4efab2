"""Bounded retry with exponential backoff for async calls.

Only transient failures are retried: upstream API errors and tool invocation
errors. Parse errors are format mismatches and are never retried.
"""

import asyncio
import functools
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger()


def retry_async(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float = 30.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Decorator that retries a coroutine function with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (1 disables retrying)
        initial_delay: Delay before the second attempt, in seconds
        backoff_factor: Multiplier applied to the delay after each failure
        max_delay: Upper bound for a single delay
        exceptions: Exception types that trigger a retry

    Example:
        @retry_async(max_attempts=3, exceptions=(UpstreamApiError,))
        async def call_model(messages): ...
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = initial_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        await logger.awarning(
                            "Giving up after retries",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise
                    await logger.ainfo(
                        "Retrying after failure",
                        function=func.__name__,
                        attempt=attempt,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)

        return wrapper

    return decorator
