# src/geyser/ledger/unlocks.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from geyser.errors import InvalidAmount, ScheduleCapReached

Json = Dict[str, Any]


@dataclass
class UnlockSchedule:
    """One linear vesting grant, denominated in locked-pool shares."""

    initial_locked_shares: int
    unlocked_shares: int
    last_unlock_ts: int
    end_ts: int
    duration_sec: int

    @property
    def is_done(self) -> bool:
        return self.unlocked_shares >= self.initial_locked_shares

    def advance(self, now: int) -> int:
        """Unlock whatever vested since the last call and return that many shares.

        Once now >= end_ts the remainder is swept in full, so the floor
        division of earlier steps never leaves shares behind.
        """
        if self.is_done:
            return 0
        t = int(now)
        if t >= self.end_ts:
            newly = self.initial_locked_shares - self.unlocked_shares
        else:
            newly = self.initial_locked_shares * (t - self.last_unlock_ts) // self.duration_sec
            newly = min(newly, self.initial_locked_shares - self.unlocked_shares)
        self.unlocked_shares += newly
        self.last_unlock_ts = t
        return newly

    def to_json(self) -> Json:
        return asdict(self)

    @classmethod
    def from_json(cls, j: Json) -> "UnlockSchedule":
        return cls(
            initial_locked_shares=int(j["initial_locked_shares"]),
            unlocked_shares=int(j["unlocked_shares"]),
            last_unlock_ts=int(j["last_unlock_ts"]),
            end_ts=int(j["end_ts"]),
            duration_sec=int(j["duration_sec"]),
        )


class UnlockScheduler:
    """Bounded list of unlock schedules.

    The list object is owned by GeyserState; the scheduler only carries
    the capacity and the rules for growing and advancing it.
    """

    def __init__(self, schedules: List[UnlockSchedule], *, capacity: int) -> None:
        self.schedules = schedules
        self.capacity = int(capacity)

    def __len__(self) -> int:
        return len(self.schedules)

    def ensure_capacity(self) -> None:
        if len(self.schedules) >= self.capacity:
            raise ScheduleCapReached(
                "reached_maximum_unlock_schedules",
                {"count": len(self.schedules), "capacity": self.capacity},
            )

    def add(self, *, locked_shares: int, now: int, duration_sec: int) -> UnlockSchedule:
        dur = int(duration_sec)
        if dur <= 0:
            raise InvalidAmount("duration_must_be_positive", {"duration_sec": dur})
        self.ensure_capacity()
        t = int(now)
        sched = UnlockSchedule(
            initial_locked_shares=int(locked_shares),
            unlocked_shares=0,
            last_unlock_ts=t,
            end_ts=t + dur,
            duration_sec=dur,
        )
        self.schedules.append(sched)
        return sched

    def advance_all(self, now: int) -> int:
        total = 0
        for s in self.schedules:
            total += s.advance(now)
        return total

    def remaining_shares(self) -> int:
        return sum(s.initial_locked_shares - s.unlocked_shares for s in self.schedules)
