"""
Bounded polling: wait for a condition until a fixed deadline.

Shared by the hostname wait and the rollout wait.

Semantics:
    - The deadline is computed once, when the wait starts. It does not
      slide when a check is slow.
    - The last check runs at (or just past) the deadline, so a wait
      that reports a timeout has always used its whole window.
    - Exceptions listed in ``tolerate`` count as "not ready yet".
      Anything else propagates.

Clock and sleep are injectable so tests can drive time explicitly.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class WaitResult(Generic[T]):
    """Outcome of :func:`wait_until`."""

    ok: bool
    value: T | None = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def timed_out(self) -> bool:
        return not self.ok


def wait_until(
    check: Callable[[], T | None],
    *,
    interval: float,
    timeout: float,
    tolerate: tuple[type[BaseException], ...] = (),
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Any] = time.sleep,
    description: str = "condition",
) -> WaitResult[T]:
    """Call *check* every *interval* seconds until it returns a truthy value.

    Args:
        check: Returns a truthy value when the condition holds.
        interval: Seconds between checks.
        timeout: Total window in seconds, measured from the first call.
        tolerate: Exception types treated as a negative check.
        clock: Monotonic time source.
        sleep: Blocking sleep function.
        description: Used in log lines.

    Returns:
        WaitResult with ``ok=True`` and the check's value, or ``ok=False``
        once the deadline has passed.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")

    start = clock()
    deadline = start + timeout
    attempts = 0

    while True:
        attempts += 1
        try:
            value = check()
        except tolerate as e:
            logger.debug("Waiting for %s: check failed (%s), treating as not ready", description, e)
            value = None

        now = clock()
        if value:
            logger.debug("%s satisfied after %d check(s), %.1fs", description, attempts, now - start)
            return WaitResult(ok=True, value=value, attempts=attempts, elapsed=now - start)

        if now >= deadline:
            logger.info(
                "Gave up waiting for %s after %d check(s), %.1fs",
                description, attempts, now - start,
            )
            return WaitResult(ok=False, attempts=attempts, elapsed=now - start)

        sleep(min(interval, deadline - now))
