"""
Retry logic with exponential backoff for LLM streams.

Features:
- Configurable retry policies
- Exponential backoff with jitter
- Stream-aware retries: a stream is only re-opened while it has not yet
  produced a fragment, so callers never see duplicated text
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from teddy.config.defaults import (
    RETRY_BASE_DELAY_MS,
    RETRY_JITTER_FACTOR,
    RETRY_MAX_DELAY_MS,
    RETRY_MAX_RETRIES,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = RETRY_MAX_RETRIES
    base_delay_ms: float = RETRY_BASE_DELAY_MS
    max_delay_ms: float = RETRY_MAX_DELAY_MS
    backoff_multiplier: float = 2.0
    jitter: float = RETRY_JITTER_FACTOR
    retryable_exceptions: tuple = (
        ConnectionError,
        TimeoutError,
        asyncio.TimeoutError,
    )
    retryable_status_codes: tuple = (429, 500, 502, 503, 504, 529)


@dataclass
class RetryStats:
    """Statistics for retry attempts."""
    attempts: int = 0
    total_delay_ms: float = 0.0
    last_error: Optional[Exception] = None


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for given attempt with exponential backoff and jitter.

    Formula: min(base * (multiplier ^ attempt) + jitter, max_delay)
    """
    delay = config.base_delay_ms * (config.backoff_multiplier ** attempt)
    delay = min(delay, config.max_delay_ms)

    # Add jitter
    jitter_range = delay * config.jitter
    delay += random.uniform(-jitter_range, jitter_range)

    return max(0, delay)


def is_retryable(error: Exception, config: RetryConfig) -> bool:
    """Check if error is retryable."""
    if isinstance(error, config.retryable_exceptions):
        return True

    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code in config.retryable_status_codes

    # Transport errors from httpx (ConnectError, ReadTimeout, ...) and wrapped causes
    cause = getattr(error, "cause", None) or error.__cause__
    if cause is not None and cause is not error:
        return is_retryable(cause, config)

    error_str = f"{type(error).__name__} {error}".lower()
    retryable_keywords = ["timeout", "timed out", "connect", "temporarily"]
    return any(kw in error_str for kw in retryable_keywords)


async def retry_stream(
    open_stream: Callable[[], AsyncIterator[str]],
    config: Optional[RetryConfig] = None,
    label: str = "stream",
) -> AsyncIterator[str]:
    """Yield fragments from open_stream(), re-opening it on retryable failures.

    Once the first fragment has been yielded, errors propagate unchanged.
    """
    config = config or RetryConfig()
    stats = RetryStats()

    while True:
        stats.attempts += 1
        yielded = False
        try:
            async for fragment in open_stream():
                yielded = True
                yield fragment
            return
        except Exception as e:
            stats.last_error = e
            if yielded or not is_retryable(e, config) or stats.attempts > config.max_retries:
                raise

            delay_ms = calculate_backoff(stats.attempts - 1, config)
            stats.total_delay_ms += delay_ms
            logger.warning(
                f"{label} attempt {stats.attempts}/{config.max_retries + 1} failed "
                f"({type(e).__name__}: {e}); retrying in {delay_ms:.0f}ms"
            )
            await asyncio.sleep(delay_ms / 1000.0)
