# src/llm/retry.py — v2
"""Retry policy with exponential backoff for transient provider failures.

Only errors flagged ``transient`` (timeouts, 5xx-equivalents, rate limits
with retry-after) are retried. Auth and validation failures propagate on
the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from docmapper.core.errors import (
    ProviderError,
    ProviderRetryExhausted,
    ProviderServerError,
    ProviderTimeout,
    RateLimited,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration shared by all transient error types."""

    max_retries: int = 2
    base_delay_s: float = 1.0
    backoff_factor: float = 2.0
    jitter: bool = True
    max_delay_s: float = 60.0


def classify_error(error: Exception) -> str:
    """Classify an exception into a retry error type."""
    if isinstance(error, RateLimited):
        return "rate_limit"
    if isinstance(error, ProviderTimeout):
        return "timeout"
    if isinstance(error, ProviderServerError):
        return "server_error"
    if isinstance(error, ProviderError):
        return "permanent"
    return "unknown"


def compute_delay(config: RetryConfig, attempt: int, error: Exception | None = None) -> float:
    """Delay before the retry following a failed attempt (0-based).

    A retry_after hint from the provider overrides the backoff schedule.
    """
    if isinstance(error, RateLimited) and error.retry_after is not None:
        return min(max(0.0, error.retry_after), config.max_delay_s)
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return min(delay, config.max_delay_s)


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    provider: str = "unknown",
    config: RetryConfig | None = None,
    before_attempt: Callable[[], None] | None = None,
    **kwargs: Any,
) -> Any:
    """Execute an async function, retrying transient ProviderErrors.

    Args:
        before_attempt: Hook run before every attempt (cancellation check).

    Raises:
        ProviderRetryExhausted: If a transient error persists past max_retries.
        ProviderError: Non-transient errors, unchanged.
    """
    config = config or RetryConfig()
    attempts = 0

    while True:
        if before_attempt is not None:
            before_attempt()
        try:
            return await fn(*args, **kwargs)
        except ProviderError as e:
            attempts += 1
            if not e.transient:
                raise
            if attempts > config.max_retries:
                raise ProviderRetryExhausted(provider, attempts, e) from e

            delay = compute_delay(config, attempts - 1, e)
            logger.warning(
                "Provider '%s' %s (attempt %d/%d), retrying in %.1fs",
                provider, classify_error(e), attempts, config.max_retries + 1, delay,
            )
            await asyncio.sleep(delay)
