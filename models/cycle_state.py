"""
Runtime state shared by the scheduler loops.

``RunContext`` replaces a module-level "is running" flag: main.py owns one,
signal handlers call ``request_stop`` and the loops check ``running`` at
their boundaries. ``CycleState`` is the per-episode bookkeeping reset every
time a new pair is selected.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


class RunContext:
    def __init__(self) -> None:
        self._stop_evt = threading.Event()

    @property
    def running(self) -> bool:
        return not self._stop_evt.is_set()

    def request_stop(self) -> None:
        self._stop_evt.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if a stop was requested meanwhile."""
        return self._stop_evt.wait(max(0.0, seconds))


@dataclass
class CycleState:
    consecutive_losses: int = 0
    cycle_start_time: float = field(default_factory=time.monotonic)

    def reset(self, now: float) -> None:
        self.consecutive_losses = 0
        self.cycle_start_time = now

    def elapsed(self, now: float) -> float:
        return now - self.cycle_start_time
