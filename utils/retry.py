"""
Caller-side retry with exponential backoff.

The gateway core never retries on its own. Callers that want retries wrap
an operation returning a GatewayResult; only transient error kinds are
retried. Because a failing backend is marked degraded by the pool, the next
attempt naturally fails over to the next healthy backend.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, FrozenSet

from core.domain import ErrorKind, GatewayResult
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


RETRYABLE_KINDS: FrozenSet[ErrorKind] = frozenset({
    ErrorKind.NO_HEALTHY_BACKEND,
    ErrorKind.BACKEND_UNAVAILABLE,
    ErrorKind.TIMEOUT,
})


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        initial_delay_ms: Initial delay in milliseconds
        max_delay_ms: Maximum delay in milliseconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter to delay
    """
    max_attempts: int = 1
    initial_delay_ms: float = 250.0
    max_delay_ms: float = 2000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            initial_delay_ms=settings.RETRY_INITIAL_DELAY_MS,
            max_delay_ms=settings.RETRY_MAX_DELAY_MS,
        )


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Delay in seconds before attempt `attempt + 1` (attempt is 0-based).
    """
    delay_ms = min(
        config.initial_delay_ms * (config.backoff_multiplier ** attempt),
        config.max_delay_ms
    )

    # ±25% random variation
    if config.jitter:
        delay_ms *= 0.75 + (random.random() * 0.5)

    return delay_ms / 1000.0


async def retry_result(
    operation: Callable[[], Awaitable[GatewayResult]],
    config: RetryConfig,
    retry_on: FrozenSet[ErrorKind] = RETRYABLE_KINDS,
    operation_name: str = "operation",
) -> GatewayResult:
    """
    Run `operation` until it returns Ok, a non-retryable Err, or attempts run out.

    Returns the last result. Streams are not retried.

    Example:
        >>> result = await retry_result(lambda: gateway.chat("hi"), RetryConfig(max_attempts=3))
    """
    attempts = max(1, config.max_attempts)
    result = None

    for attempt in range(attempts):
        result = await operation()
        if result.is_ok or result.error.kind not in retry_on:
            if attempt > 0 and result.is_ok:
                logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")
            return result

        if attempt < attempts - 1:
            delay = calculate_delay(attempt, config)
            logger.warning(
                f"{operation_name} failed ({result.error.kind.value}: {result.error.message}), "
                f"retrying in {delay:.2f}s ({attempt + 1}/{attempts})"
            )
            await asyncio.sleep(delay)

    logger.error(f"{operation_name} failed after {attempts} attempts")
    return result
