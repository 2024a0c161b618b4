# src/geyser/ledger/state.py
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List

from geyser.ledger.stakes import AccountTotals, StakeArena
from geyser.ledger.unlocks import UnlockSchedule

Json = Dict[str, Any]

# Increment when the snapshot layout changes.
STATE_VERSION = 1


@dataclass
class GeyserState:
    """All mutable ledger state of one geyser.

    Token balances are not part of it: they live with the token and are
    read through the custody vaults.
    """

    total_staking_shares: int = 0
    total_share_seconds: int = 0
    last_accounting_ts: int = 0
    total_locked_shares: int = 0
    schedules: List[UnlockSchedule] = field(default_factory=list)
    accounts: Dict[str, AccountTotals] = field(default_factory=dict)
    arena: StakeArena = field(default_factory=StakeArena)

    def clone(self) -> "GeyserState":
        return copy.deepcopy(self)

    def to_json(self) -> Json:
        return {
            "state_version": STATE_VERSION,
            "total_staking_shares": int(self.total_staking_shares),
            "total_share_seconds": int(self.total_share_seconds),
            "last_accounting_ts": int(self.last_accounting_ts),
            "total_locked_shares": int(self.total_locked_shares),
            "schedules": [s.to_json() for s in self.schedules],
            "accounts": {k: self.accounts[k].to_json() for k in sorted(self.accounts.keys())},
            "stakes": self.arena.to_json(),
        }

    @classmethod
    def from_json(cls, j: Json) -> "GeyserState":
        if not isinstance(j, dict):
            raise ValueError(f"geyser state must be a JSON object, got {type(j).__name__}")
        ver = int(j.get("state_version", 0) or 0)
        if ver != STATE_VERSION:
            raise ValueError(f"unsupported geyser state_version {ver}; expected {STATE_VERSION}")
        accounts = j.get("accounts") or {}
        return cls(
            total_staking_shares=int(j.get("total_staking_shares", 0)),
            total_share_seconds=int(j.get("total_share_seconds", 0)),
            last_accounting_ts=int(j.get("last_accounting_ts", 0)),
            total_locked_shares=int(j.get("total_locked_shares", 0)),
            schedules=[UnlockSchedule.from_json(s) for s in (j.get("schedules") or [])],
            accounts={str(k): AccountTotals.from_json(v) for k, v in accounts.items()},
            arena=StakeArena.from_json(j.get("stakes") or {}),
        )
