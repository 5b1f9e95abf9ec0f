# quotegate/rate_limit.py
# Purpose: Fixed-window budget for outbound quote requests.
# Pitfalls: Bursts of up to 2x budget are possible across a window boundary; each
#   process has its own window.

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

DEFAULT_BUDGET = 30  # provider free tier allows 60/min
DEFAULT_WINDOW_SEC = 60.0


class RateGate(Protocol):
    def try_acquire(self) -> bool: ...


class RateLimiter:
    def __init__(
        self,
        budget: int = DEFAULT_BUDGET,
        window_sec: float = DEFAULT_WINDOW_SEC,
        clock: Callable[[], float] = time.time,
    ):
        if budget < 0:
            raise ValueError("budget must be >= 0")
        self.budget = budget
        self.window_sec = window_sec
        self._clock = clock
        self.count = 0
        self.window_start = clock()

    def _advance(self, now: float) -> None:
        if now - self.window_start > self.window_sec:
            self.count = 0
            self.window_start = now

    def try_acquire(self) -> bool:
        """Spend one request from the current window; False once the budget is gone."""
        self._advance(self._clock())
        if self.count >= self.budget:
            return False
        self.count += 1
        return True

    @property
    def remaining(self) -> int:
        self._advance(self._clock())
        return self.budget - self.count
