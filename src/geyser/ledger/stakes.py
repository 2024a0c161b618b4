# src/geyser/ledger/stakes.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

from geyser.errors import ClockRegression, InsufficientStake

if TYPE_CHECKING:  # pragma: no cover
    from geyser.ledger.state import GeyserState

Json = Dict[str, Any]


@dataclass
class StakeRecord:
    shares: int
    timestamp: int


@dataclass
class AccountTotals:
    staking_shares: int = 0
    share_seconds: int = 0
    last_accounting_ts: int = 0

    def to_json(self) -> Json:
        return asdict(self)

    @classmethod
    def from_json(cls, j: Json) -> "AccountTotals":
        return cls(
            staking_shares=int(j.get("staking_shares", 0)),
            share_seconds=int(j.get("share_seconds", 0)),
            last_accounting_ts=int(j.get("last_accounting_ts", 0)),
        )


@dataclass(frozen=True)
class ConsumedChunk:
    shares: int
    age_sec: int

    @property
    def share_seconds(self) -> int:
        return self.shares * self.age_sec


class StakeArena:
    """Stake records of every account in one keyed arena.

    Each account owns the index range [head, tail). Deposits are pushed at
    tail; withdrawals shrink or pop the record at tail - 1. Nothing ever
    reorders a range, and an emptied range collapses back to [0, 0).
    """

    def __init__(self) -> None:
        self.records: Dict[Tuple[str, int], StakeRecord] = {}
        self.bounds: Dict[str, List[int]] = {}

    def count(self, account: str) -> int:
        b = self.bounds.get(account)
        return (b[1] - b[0]) if b else 0

    def push(self, account: str, record: StakeRecord) -> int:
        b = self.bounds.setdefault(account, [0, 0])
        idx = b[1]
        self.records[(account, idx)] = record
        b[1] = idx + 1
        return idx

    def tail(self, account: str) -> Optional[StakeRecord]:
        b = self.bounds.get(account)
        if not b or b[1] <= b[0]:
            return None
        return self.records[(account, b[1] - 1)]

    def pop(self, account: str) -> StakeRecord:
        b = self.bounds.get(account)
        if not b or b[1] <= b[0]:
            raise IndexError(f"no stake records for {account!r}")
        b[1] -= 1
        rec = self.records.pop((account, b[1]))
        if b[1] == b[0]:
            del self.bounds[account]
        return rec

    def iter_records(self, account: str) -> Iterator[StakeRecord]:
        b = self.bounds.get(account)
        if not b:
            return
        for i in range(b[0], b[1]):
            yield self.records[(account, i)]

    def accounts(self) -> List[str]:
        return sorted(self.bounds.keys())

    def to_json(self) -> Json:
        out: Json = {}
        for acct in self.accounts():
            out[acct] = [[r.shares, r.timestamp] for r in self.iter_records(acct)]
        return out

    @classmethod
    def from_json(cls, j: Json) -> "StakeArena":
        arena = cls()
        for acct in sorted((j or {}).keys()):
            for shares, ts in j[acct]:
                arena.push(acct, StakeRecord(shares=int(shares), timestamp=int(ts)))
        return arena


class StakeLedger:
    """Share and share-second bookkeeping over a GeyserState."""

    def __init__(self, state: "GeyserState") -> None:
        self.state = state

    def totals(self, account: str) -> Optional[AccountTotals]:
        return self.state.accounts.get(account)

    def accrue(self, now: int, account: Optional[str] = None) -> None:
        """Advance share-seconds to `now` globally and for `account`.

        Idempotent at a fixed timestamp. Accounts without records are left
        untouched rather than materialised.
        """
        st = self.state
        t = int(now)
        if t < st.last_accounting_ts:
            raise ClockRegression(
                "timestamp_before_last_accounting",
                {"now": t, "last_accounting_ts": st.last_accounting_ts},
            )
        st.total_share_seconds += (t - st.last_accounting_ts) * st.total_staking_shares
        st.last_accounting_ts = t

        if account is None:
            return
        totals = st.accounts.get(account)
        if totals is None:
            return
        if t < totals.last_accounting_ts:
            raise ClockRegression(
                "timestamp_before_account_accounting",
                {"account": account, "now": t, "last_accounting_ts": totals.last_accounting_ts},
            )
        totals.share_seconds += (t - totals.last_accounting_ts) * totals.staking_shares
        totals.last_accounting_ts = t

    def record_stake(self, account: str, *, shares: int, now: int) -> AccountTotals:
        st = self.state
        totals = st.accounts.get(account)
        if totals is None:
            totals = AccountTotals(last_accounting_ts=int(now))
            st.accounts[account] = totals
        totals.staking_shares += int(shares)
        st.total_staking_shares += int(shares)
        st.arena.push(account, StakeRecord(shares=int(shares), timestamp=int(now)))
        return totals

    def consume_lifo(self, account: str, *, shares: int, now: int) -> List[ConsumedChunk]:
        """Take `shares` off the account's newest records first.

        The last record touched is shrunk in place; every record consumed in
        full is popped. Returns one chunk per record touched, newest first.
        """
        left = int(shares)
        totals = self.state.accounts.get(account)
        have = totals.staking_shares if totals is not None else 0
        if left > have:
            raise InsufficientStake("shares_exceed_account_shares", {"account": account, "shares": left, "have": have})

        arena = self.state.arena
        chunks: List[ConsumedChunk] = []
        while left > 0:
            rec = arena.tail(account)
            if rec is None:
                raise InsufficientStake("stake_records_exhausted", {"account": account, "left": left})
            age = int(now) - rec.timestamp
            if rec.shares <= left:
                chunks.append(ConsumedChunk(shares=rec.shares, age_sec=age))
                left -= rec.shares
                arena.pop(account)
            else:
                chunks.append(ConsumedChunk(shares=left, age_sec=age))
                rec.shares -= left
                left = 0
        return chunks

    def burn(self, account: str, *, shares: int, share_seconds: int) -> None:
        st = self.state
        totals = st.accounts[account]
        totals.staking_shares -= int(shares)
        totals.share_seconds -= int(share_seconds)
        st.total_staking_shares -= int(shares)
        st.total_share_seconds -= int(share_seconds)
        if st.arena.count(account) == 0:
            del st.accounts[account]
