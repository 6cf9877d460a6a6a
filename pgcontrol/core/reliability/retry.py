"""
Retry policy — a bounded, explicit retry loop.

Used for the one transient condition we know about: pg_controldata
sometimes exits 0 with no output at all. The policy is a plain loop
with an attempt budget, so it can be tested without sleeping.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """How many times to try, and how long to wait in between."""

    max_attempts: int = 2
    delay: float = 1.0
    backoff: float = 1.0           # multiplier applied after each wait
    max_delay: float = 60.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return min(self.delay * (self.backoff ** (attempt - 1)), self.max_delay)


@dataclass
class RetryOutcome(Generic[T]):
    """What a retried call ended with."""

    value: T
    attempts: int
    exhausted: bool


def retry_while(
    func: Callable[[], T],
    should_retry: Callable[[T], bool],
    policy: RetryPolicy,
    description: str = "operation",
) -> RetryOutcome[T]:
    """Call ``func`` until ``should_retry`` is false or attempts run out.

    Exceptions raised by ``func`` are not retried; they propagate.
    """
    attempt = 0
    while True:
        attempt += 1
        value = func()
        if not should_retry(value):
            return RetryOutcome(value=value, attempts=attempt, exhausted=False)

        if attempt >= policy.max_attempts:
            logger.warning("%s still needs a retry after %d attempts, giving up",
                           description, attempt)
            return RetryOutcome(value=value, attempts=attempt, exhausted=True)

        delay = policy.delay_for(attempt)
        logger.warning("%s: trying again in %gs (attempt %d/%d)",
                       description, delay, attempt + 1, policy.max_attempts)
        policy.sleep(delay)
