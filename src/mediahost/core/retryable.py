"""Retryable error classification with exponential backoff retry.

Classifies errors as retryable (transient) or non-retryable (permanent).
Used by the storage and runtime adapters to retry at the point of call.
Adapters map client errors (paramiko, httpx) to domain errors first, so
only domain errors and timeouts reach the classification.

Usage:
    from mediahost.core.retryable import with_retry

    result = await with_retry(lambda: shell.run("mkdir -p /media-storage/c1"))
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from mediahost.core.errors import (
    MediaHostError,
    RuntimeUnavailableError,
    StorageUnreachableError,
)
from mediahost.core.logging_schema import ErrorClass

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Error classification
# =============================================================================

TRANSIENT_ERRORS = (
    StorageUnreachableError,
    RuntimeUnavailableError,
)


def classify_error(exc: Exception) -> str:
    """Classify error as 'retryable', 'permanent', or 'unknown'.

    Args:
        exc: Exception to classify

    Returns:
        'retryable': Transient error, can retry
        'permanent': Permanent error, should not retry
        'unknown': Cannot classify
    """
    # asyncio timeout
    if isinstance(exc, asyncio.TimeoutError):
        return "retryable"

    if isinstance(exc, TRANSIENT_ERRORS):
        return "retryable"
    # Any other classified failure (bad image, non-zero exit, conflict)
    if isinstance(exc, MediaHostError):
        return "permanent"

    return "unknown"


# =============================================================================
# Retry utility
# =============================================================================


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> T:
    """Execute async operation with exponential backoff retry.

    Only retries for retryable errors (transient failures).
    Non-retryable errors are raised immediately.

    Args:
        coro_factory: Factory function that creates new coroutine for each attempt
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 30.0)

    Returns:
        Result of successful operation

    Raises:
        Exception: The last exception if all retries fail, or immediately
                   for non-retryable errors

    Example:
        usage = await with_retry(lambda: storage.get_usage("c1"))
        await with_retry(lambda: runtime.stop(name), max_retries=5)
    """
    last_exc: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except Exception as exc:
            last_exc = exc
            error_class = classify_error(exc)

            # Non-retryable errors: fail immediately
            if error_class == "permanent":
                logger.debug(
                    "Permanent error (not retrying): %s",
                    exc,
                    extra={"error_class": ErrorClass.PERMANENT, "attempt": attempt + 1},
                )
                raise

            # Last attempt: raise the error
            if attempt == max_retries:
                logger.error(
                    "Max retries exceeded (%d attempts): %s",
                    max_retries + 1,
                    exc,
                    extra={"error_class": ErrorClass.TRANSIENT, "attempt": attempt + 1},
                )
                raise

            # Calculate delay with exponential backoff + jitter
            delay = min(base_delay * (2**attempt), max_delay)
            # Jitter: 50% ~ 150% of delay
            jittered_delay = delay * (0.5 + random.random())
            logger.warning(
                "Retryable error (attempt %d/%d, retry in %.1fs): %s",
                attempt + 1,
                max_retries + 1,
                jittered_delay,
                exc,
                extra={
                    "error_class": ErrorClass.TRANSIENT,
                    "attempt": attempt + 1,
                    "delay": jittered_delay,
                },
            )
            await asyncio.sleep(jittered_delay)

    # This should never be reached, but satisfy type checker
    if last_exc:
        raise last_exc
    raise RuntimeError("Unexpected state in with_retry")
