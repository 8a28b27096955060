"""Retry and backoff utilities for outbound HTTP clients.

Retries belong to the external-source clients (e.g. the Notion client), never
to the delivery engine: the engine treats a failed call as a transient failure
and relies on the next scheduler tick.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from threadbot.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Status codes worth retrying: rate limiting and upstream hiccups
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def is_transient_http_error(exc: BaseException) -> bool:
    """True for transport failures and retryable HTTP status responses."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    return False


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0
    jitter: bool = True
    should_retry: Callable[[BaseException], bool] = field(default=is_transient_http_error)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Execute an async call, retrying transient failures with exponential backoff.

    Each retry waits min(backoff_base * 2^attempt, backoff_max) seconds, scaled
    by a random factor in [0.5, 1.5) when jitter is enabled. Errors rejected by
    config.should_retry propagate immediately.

    Args:
        fn: Async function to execute (no arguments)
        config: Retry configuration, uses defaults if not provided
        operation_name: Name for logging purposes

    Returns:
        Result of fn()

    Raises:
        Exception: The last exception once retries are exhausted
    """
    config = config or RetryConfig()

    for attempt in range(config.max_attempts):
        try:
            return await fn()
        except Exception as e:
            if not config.should_retry(e):
                raise

            if attempt + 1 >= config.max_attempts:
                logger.bind(
                    operation=operation_name,
                    attempts=config.max_attempts,
                    error=str(e),
                ).error("retry_exhausted")
                raise

            delay = min(config.backoff_base * (2**attempt), config.backoff_max)
            if config.jitter:
                delay *= 0.5 + random.random()

            logger.bind(
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 2),
                error=str(e),
            ).warning("retry_attempt")
            await asyncio.sleep(delay)

    raise RuntimeError("retry_with_backoff called with max_attempts < 1")
