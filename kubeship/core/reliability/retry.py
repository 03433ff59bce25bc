"""
Retry with backoff for short external calls (registry login).

Unlike polling, a retry re-runs an action that failed. The delay
schedule follows the usual ``base * multiplier ** (attempt - 1)`` form,
capped at ``max_delay``; a multiplier of 1 gives a fixed backoff.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between.

    Args:
        retries: Extra attempts after the first one.
        backoff: Base delay in seconds.
        multiplier: Growth factor per attempt (1.0 = fixed backoff).
        max_delay: Upper bound for a single delay.
    """

    retries: int = 2
    backoff: float = 5.0
    multiplier: float = 1.0
    max_delay: float = 60.0

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.backoff * (self.multiplier ** (attempt - 1)), self.max_delay)


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Any] = time.sleep,
    description: str = "operation",
) -> T:
    """Call *fn*, retrying on *retry_on* errors according to *policy*.

    The error from the final attempt is re-raised unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                logger.warning(
                    "%s failed after %d attempt(s): %s", description, attempt, e,
                )
                raise
            delay = policy.delay(attempt)
            logger.info(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                description, attempt, policy.max_attempts, e, delay,
            )
            sleep(delay)
