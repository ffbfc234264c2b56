"""
Retry with exponential backoff for async operations.
Used for resilient upstream calls and transient error handling.
"""

import asyncio
import inspect
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from .logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Matched case-insensitively against the error message when no allow-list is set
TRANSIENT_ERROR_PATTERNS = (
    "network",
    "timeout",
    "timed out",
    "econnrefused",
    "econnreset",
    "etimedout",
    "connection",
    "fetch failed",
    "503",  # Service unavailable
    "429",  # Rate limit
)

RetryCallback = Callable[[int, BaseException], Any]


@dataclass
class RetryOptions:
    """Retry configuration. Delays are in seconds."""
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_errors: Optional[Sequence[str]] = None
    on_retry: Optional[RetryCallback] = None


def calculate_delay(attempt: int, options: RetryOptions) -> float:
    """
    Calculate the wait before the next attempt.

    Formula: min(initial_delay * multiplier^attempt, max_delay)

    Args:
        attempt: Zero-based index of the attempt that just failed
        options: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = options.initial_delay * (options.backoff_multiplier ** attempt)
    return min(delay, options.max_delay)


def is_retryable_error(error: BaseException, options: RetryOptions) -> bool:
    """
    Check whether an error should trigger a retry.

    An explicit allow-list replaces the built-in transient patterns.
    """
    message = str(error).lower()

    if options.retryable_errors:
        return any(entry.lower() in message for entry in options.retryable_errors)

    return any(pattern in message for pattern in TRANSIENT_ERROR_PATTERNS)


async def _notify(callback: RetryCallback, attempt: int, error: BaseException) -> None:
    result = callback(attempt, error)
    if inspect.isawaitable(result):
        await result


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    **overrides: Any
) -> T:
    """
    Run an async operation with exponential backoff retry.

    Makes up to max_retries + 1 attempts. Non-retryable errors and the
    error from the final attempt are re-raised unchanged.

    Args:
        operation: Zero-argument coroutine function
        options: Retry configuration (defaults when omitted)
        **overrides: Individual RetryOptions fields to override

    Returns:
        Result of the operation

    Raises:
        Exception: The original error from the operation
    """
    opts = replace(options or RetryOptions(), **overrides)

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= opts.max_retries:
                logger.error(
                    f"Retry exhausted after {attempt + 1} attempts "
                    f"(max_retries={opts.max_retries}): {e}"
                )
                raise

            if not is_retryable_error(e, opts):
                logger.warning(f"Non-retryable error on attempt {attempt + 1}: {e}")
                raise

            delay = calculate_delay(attempt, opts)
            logger.warning(
                f"Attempt {attempt + 1}/{opts.max_retries + 1} failed, "
                f"retrying in {delay:.2f}s: {e}"
            )

            if opts.on_retry is not None:
                await _notify(opts.on_retry, attempt + 1, e)

            await asyncio.sleep(delay)
            attempt += 1


def create_retry_handler(
    options: RetryOptions
) -> Callable[[Callable[[], Awaitable[T]]], Awaitable[T]]:
    """
    Create a retry executor with predefined options.

    Args:
        options: Retry configuration

    Returns:
        Function taking an operation and running it with retry
    """
    def handler(operation: Callable[[], Awaitable[T]]) -> Awaitable[T]:
        return with_retry(operation, options)

    return handler
