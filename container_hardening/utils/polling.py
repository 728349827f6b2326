"""
Bounded poll-with-backoff primitive used for readiness waits.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class PollResult(Generic[T]):
    """Last observed value of a poll and whether the deadline was hit."""
    value: Optional[T]
    attempts: int
    elapsed: float
    timed_out: bool


def poll_until(probe: Callable[[], T],
               is_done: Callable[[T], bool],
               timeout: float,
               interval: float = 1.0,
               backoff: float = 2.0,
               max_interval: float = 10.0,
               clock: Callable[[], float] = time.monotonic,
               sleep: Callable[[float], Any] = time.sleep) -> PollResult[T]:
    """
    Call ``probe`` until ``is_done`` accepts its value or ``timeout`` elapses.

    The probe always runs at least once. The wait between attempts starts
    at ``interval`` and is multiplied by ``backoff`` after every attempt,
    capped at ``max_interval`` and at the time left before the deadline.

    Args:
        probe: Callable returning the current observation
        is_done: Predicate deciding whether polling can stop
        timeout: Overall budget in seconds
        interval: First delay between attempts
        backoff: Delay multiplier
        max_interval: Upper bound for a single delay
        clock: Monotonic clock (injectable for tests)
        sleep: Sleep function (injectable for tests)

    Returns:
        PollResult: Last value, number of attempts, elapsed time and timeout flag
    """
    start = clock()
    deadline = start + timeout
    delay = interval
    attempts = 0

    while True:
        value = probe()
        attempts += 1
        if is_done(value):
            return PollResult(value, attempts, clock() - start, timed_out=False)

        remaining = deadline - clock()
        if remaining <= 0:
            return PollResult(value, attempts, clock() - start, timed_out=True)

        sleep(min(delay, max_interval, remaining))
        delay *= backoff
