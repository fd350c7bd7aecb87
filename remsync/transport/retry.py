# remsync Transport Retry
# Exponential backoff for calls that are safe to repeat

import time
from collections.abc import Callable
from typing import TypeVar

from remsync.config.schema import RetryConfig
from remsync.sync.errors import TransportFailure

T = TypeVar("T")


def backoff_delays(config: RetryConfig) -> list[float]:
    """
    Get the waits between attempts.

    Args:
        config: Retry settings.

    Returns:
        One delay per retry, doubling from backoff_base up to backoff_max.
    """
    return [min(config.backoff_base * (2**attempt), config.backoff_max) for attempt in range(config.attempts - 1)]


def with_retry(
    func: Callable[[], T],
    config: RetryConfig,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call func, retrying retryable transport failures with backoff.

    Args:
        func: Zero-argument callable performing one attempt.
        config: Retry settings.
        sleep: Wait function (tests pass a no-op).

    Returns:
        Whatever func returns.

    Raises:
        TransportFailure: The last failure once attempts are exhausted,
            or immediately when the failure isn't retryable.
    """
    delays = backoff_delays(config)
    for attempt in range(config.attempts):
        try:
            return func()
        except TransportFailure as e:
            if not e.retryable or attempt >= len(delays):
                raise
            sleep(delays[attempt])
    raise AssertionError("unreachable")
