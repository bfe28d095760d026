"""
Bounded retry with exponential backoff for transient backend failures.

Only errors flagged ``retryable`` are retried. The last error is re-raised
once the attempts run out, and non-retryable errors propagate immediately.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .exceptions import VectorSearchError
from ..util.logging import logger


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
    max_attempts: int = 3
    initial_delay_ms: float = 250.0
    max_delay_ms: float = 4000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for a given attempt with exponential backoff.

    Args:
        attempt: Attempt number (0-based)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay_ms = min(
        config.initial_delay_ms * (config.backoff_multiplier ** attempt),
        config.max_delay_ms
    )

    # ±25% random variation
    if config.jitter:
        delay_ms *= 0.75 + (random.random() * 0.5)

    return delay_ms / 1000.0


def is_retryable(error: Exception) -> bool:
    return isinstance(error, VectorSearchError) and error.retryable


def retry_call(operation: Callable[[], Any], config: RetryConfig, operation_name: str = "operation",
               sleep: Callable[[float], None] = time.sleep) -> Any:
    """
    Execute ``operation`` and retry it while it raises retryable errors.

    Example:
        >>> doc_id = retry_call(lambda: store.insert(text, vector, key=request_id),
        ...                     RetryConfig(max_attempts=3), "insert")
    """
    for attempt in range(config.max_attempts):
        try:
            return operation()
        except VectorSearchError as e:
            if not e.retryable or attempt == config.max_attempts - 1:
                raise
            delay = calculate_delay(attempt, config)
            logger.log_retry(operation_name, attempt + 1, config.max_attempts, str(e), delay)
            sleep(delay)


async def retry_async(operation: Callable[[], Awaitable[Any]], config: RetryConfig,
                      operation_name: str = "operation") -> Any:
    """Async counterpart of :func:`retry_call`."""
    for attempt in range(config.max_attempts):
        try:
            return await operation()
        except VectorSearchError as e:
            if not e.retryable or attempt == config.max_attempts - 1:
                raise
            delay = calculate_delay(attempt, config)
            logger.log_retry(operation_name, attempt + 1, config.max_attempts, str(e), delay)
            await asyncio.sleep(delay)
