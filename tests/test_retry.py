"""
Tests for bounded retry with backoff.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from vector_search.core.exceptions import InvalidThreshold, StoreUnavailable
from vector_search.core.retry import RetryConfig, calculate_delay, retry_async, retry_call


def test_calculate_delay_grows_and_caps():
    config = RetryConfig(initial_delay_ms=100, max_delay_ms=350, backoff_multiplier=2.0, jitter=False)
    assert [calculate_delay(i, config) for i in range(4)] == [0.1, 0.2, 0.35, 0.35]


def test_jitter_stays_within_quarter():
    config = RetryConfig(initial_delay_ms=100, jitter=True)
    for _ in range(50):
        assert 0.075 <= calculate_delay(0, config) <= 0.125


def test_retry_call_recovers():
    operation = MagicMock(side_effect=[StoreUnavailable("locked"), "ok"])
    sleep = MagicMock()

    assert retry_call(operation, RetryConfig(jitter=False), "insert", sleep=sleep) == "ok"
    sleep.assert_called_once_with(0.25)


def test_retry_call_reraises_last_error():
    operation = MagicMock(side_effect=StoreUnavailable("locked"))
    with pytest.raises(StoreUnavailable):
        retry_call(operation, RetryConfig(max_attempts=2), sleep=MagicMock())
    assert operation.call_count == 2


def test_non_retryable_errors_propagate_immediately():
    operation = MagicMock(side_effect=InvalidThreshold("bad", field="threshold"))
    sleep = MagicMock()
    with pytest.raises(InvalidThreshold):
        retry_call(operation, RetryConfig(), sleep=sleep)
    assert operation.call_count == 1
    sleep.assert_not_called()


def test_retry_async():
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 2:
            raise StoreUnavailable("timeout")
        return "ok"

    config = RetryConfig(initial_delay_ms=0, jitter=False)
    assert asyncio.run(retry_async(operation, config, "query")) == "ok"
    assert len(attempts) == 2
