from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TypeVar

import requests.exceptions

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryableHTTPError(requests.exceptions.HTTPError):
    """Raised for HTTP status codes that are safe to retry (429, 503)."""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    base_delay: float
    max_delay: float
    backoff_factor: float
    jitter: float
    retryable_exceptions: tuple[type[Exception], ...]
    retryable_status_codes: frozenset[int] = field(default_factory=frozenset)


# Timeouts are not retried: the message may already have gone out.
DISPATCH_SEND = RetryPolicy(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    backoff_factor=2.0,
    jitter=0.25,
    retryable_exceptions=(requests.exceptions.ConnectionError, RetryableHTTPError),
    retryable_status_codes=frozenset({429, 503}),
)


def backoff_delays(policy: RetryPolicy) -> Iterator[float]:
    """Yield the pause before each retry: exponential, capped, with +/- jitter."""
    for attempt in range(policy.max_attempts - 1):
        delay = min(policy.base_delay * policy.backoff_factor**attempt, policy.max_delay)
        spread = delay * policy.jitter
        yield max(0.0, delay + random.uniform(-spread, spread))


def retry_call(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep_func: Callable[[float], object] = time.sleep,
) -> T:
    """Run *func()*; on a retryable error wait and try again, up to policy.max_attempts.

    The last retryable error is re-raised once attempts run out; anything
    else propagates immediately.
    """
    delays = backoff_delays(policy)
    attempt = 1
    while True:
        try:
            return func()
        except policy.retryable_exceptions as exc:
            delay = next(delays, None)
            if delay is None:
                raise
            logger.warning(
                "%s on attempt %d/%d, retrying in %.1fs",
                type(exc).__name__,
                attempt,
                policy.max_attempts,
                delay,
            )
            sleep_func(delay)
            attempt += 1
