"""
Retry mechanism for resilient upstream calls.
"""

import asyncio
import functools
import random
from typing import Any, Optional, Callable, Awaitable

from shared.logging import get_logger


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = "exponential"):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy


async def call_with_retry(func: Callable[[], Awaitable[Any]],
                          *,
                          exceptions: tuple = (Exception,),
                          config: Optional[RetryConfig] = None,
                          should_retry: Optional[Callable[[BaseException], bool]] = None,
                          name: Optional[str] = None) -> Any:
    """
    Await ``func`` until it succeeds or the attempt budget runs out.

    Only exceptions matching ``exceptions`` (and accepted by ``should_retry``
    when given) are retried. The last exception is re-raised unchanged so the
    caller keeps its own error taxonomy.
    """
    config = config or RetryConfig()
    operation = name or getattr(func, "__name__", "operation")
    logger = get_logger(f"retry.{operation}")

    attempt = 1
    while True:
        try:
            result = await func()
        except exceptions as e:
            retryable = should_retry(e) if should_retry is not None else True
            if not retryable or attempt >= config.max_attempts:
                if retryable:
                    logger.error(
                        "All retry attempts exhausted",
                        attempt=attempt,
                        max_attempts=config.max_attempts,
                        function=operation,
                        error=str(e)
                    )
                raise

            delay = _calculate_delay(attempt, config)
            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                delay=delay,
                function=operation,
                error=str(e)
            )
            await asyncio.sleep(delay)
            attempt += 1
            continue

        if attempt > 1:
            logger.info("Retry succeeded", attempt=attempt, function=operation)
        return result


def retry_on_exception(exceptions: tuple = (Exception,),
                       config: Optional[RetryConfig] = None,
                       should_retry: Optional[Callable[[BaseException], bool]] = None,
                       name: Optional[str] = None) -> Callable:
    """Decorator for retrying async functions on exceptions."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            return await call_with_retry(
                lambda: func(*args, **kwargs),
                exceptions=exceptions,
                config=config,
                should_retry=should_retry,
                name=name or func.__name__,
            )

        return wrapper

    return decorator


def _calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay between retry attempts."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)
