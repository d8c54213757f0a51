"""Async retry helpers with exponential backoff."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 1.0


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


async def retry_call(
    func: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    name: str | None = None,
) -> T:
    """Await `func()` up to `max_attempts` times.

    Args:
        func: Zero-argument coroutine factory.
        max_attempts: Total attempts including the first one.
        base_delay: Base delay in seconds (doubles with each retry).
        retry_on: Tuple of exception types to retry on.
        name: Label used in log messages.

    Returns:
        The first successful result.

    Raises:
        RetryError: If every attempt failed with a retryable exception.
    """
    label = name or getattr(func, "__name__", "call")
    last_exception: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await func()
        except retry_on as e:
            last_exception = e
            if attempt == max_attempts - 1:
                break

            delay = base_delay * (2**attempt)
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                label,
                attempt + 1,
                max_attempts,
                str(e),
                delay,
            )
            await asyncio.sleep(delay)

    raise RetryError(
        f"All {max_attempts} attempts failed for {label}",
        last_exception=last_exception,
    )
