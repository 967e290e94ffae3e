# utils/polling.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class PollResult(Generic[T]):
    value: Optional[T]      # last value fetched (None if nothing was fetched)
    satisfied: bool         # the predicate matched
    attempts: int

    @property
    def timed_out(self) -> bool:
        return not self.satisfied


def poll_until(
    fetch: Callable[[], T],
    done: Callable[[T], bool],
    interval: float,
    timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    on_value: Optional[Callable[[T], None]] = None,
) -> PollResult[T]:
    """
    Call ``fetch`` every ``interval`` seconds until ``done(value)`` holds or
    ``timeout`` seconds have elapsed since the first call. ``timeout=None``
    polls forever. Exceptions from ``fetch`` propagate to the caller.

    Used both for the buy-fill wait (1 s, bounded) and for position
    monitoring (0.5 s, unbounded).
    """
    start = clock()
    attempts = 0
    value: Optional[T] = None
    while timeout is None or clock() - start < timeout:
        value = fetch()
        attempts += 1
        if on_value is not None:
            on_value(value)
        if done(value):
            return PollResult(value=value, satisfied=True, attempts=attempts)
        sleep(interval)
    return PollResult(value=value, satisfied=False, attempts=attempts)
