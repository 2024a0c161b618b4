# src/geyser/clock.py
from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    """Wall clock in whole unix seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Deterministic clock for tests and simulations.

    Time only moves forward through set()/advance(); the geyser still
    checks monotonicity on its side because a Clock is an external input.
    """

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, ts: int) -> None:
        t = int(ts)
        if t < self._now:
            raise ValueError(f"cannot move clock backwards: now={self._now} target={t}")
        self._now = t

    def advance(self, seconds: int) -> int:
        self.set(self._now + int(seconds))
        return self._now
