"""Retry with exponential backoff for storage and AI calls."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from row_object.core.exceptions import (
    AIError,
    ConfigurationError,
    DatabaseError,
    RowObjectError,
    RuntimeError,
    ValidationError,
)

logger = structlog.get_logger()

T = TypeVar("T")

_RETRYABLE_AI_CODES = frozenset({"AI_RATE_LIMIT", "AI_PROVIDER_ERROR"})

# Raw (unwrapped) errors raised by third-party clients, e.g. an AI SDK.
_RETRYABLE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"timeout",
        r"timed out",
        r"connection reset",
        r"econnreset",
        r"rate limit",
        r"too many requests",
        r"service unavailable",
        r"database is locked",
        r"\b50[234]\b",
    )
]


def is_retryable(error: BaseException) -> bool:
    """Return True if *error* is worth another attempt."""
    if isinstance(error, (ValidationError, ConfigurationError, RuntimeError)):
        return False
    if isinstance(error, DatabaseError):
        return error.transient
    if isinstance(error, AIError):
        return error.code in _RETRYABLE_AI_CODES
    if isinstance(error, RowObjectError):
        return False
    if isinstance(error, (TimeoutError, ConnectionResetError)):
        return True
    message = str(error)
    return any(pattern.search(message) for pattern in _RETRYABLE_PATTERNS)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff settings.

    With the defaults an operation is attempted once and retried three times
    after sleeping 0.5, 1.0 and 2.0 seconds.
    """

    max_retries: int = 3
    delay: float = 0.5
    backoff: float = 2.0
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry *retry_number* (0-based)."""
        return self.delay * (self.backoff**retry_number)


DEFAULT_RETRY_POLICY = RetryPolicy()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    operation_name: str = "operation",
) -> T:
    """Run *operation*, retrying retryable failures according to *policy*.

    Raises:
        The last error once it is not retryable or the retry budget is spent.
    """
    retries = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if retries >= policy.max_retries or not is_retryable(e):
                raise
            delay = policy.delay_for(retries)
            retries += 1
            logger.warning(
                "operation_retrying",
                operation=operation_name,
                retry=retries,
                max_retries=policy.max_retries,
                delay=delay,
                error=str(e),
            )
            await policy.sleep(delay)
