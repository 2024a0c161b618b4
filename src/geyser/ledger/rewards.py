# src/geyser/ledger/rewards.py
from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Dict, List, NamedTuple, Optional

from geyser.constants import FORFEIT_BURN, ONE_HUNDRED_PCT
from geyser.events import TOKENS_LOCKED, TOKENS_UNLOCKED, GeyserEvent
from geyser.ledger.shares import shares_for_deposit, shares_for_withdrawal, tokens_for_shares
from geyser.ledger.stakes import ConsumedChunk, StakeLedger
from geyser.ledger.state import GeyserState
from geyser.ledger.unlocks import UnlockSchedule, UnlockScheduler
from geyser.ledger.vaults import CustodyVaults, Settlement

Json = Dict[str, Any]


@dataclass(frozen=True)
class RewardParams:
    start_bonus: int
    bonus_period_sec: int
    initial_shares_per_token: int
    max_unlock_schedules: int
    forfeit_policy: str
    forfeit_sink: str


class AccountingSnapshot(NamedTuple):
    total_locked: int
    total_unlocked: int
    account_share_seconds: int
    global_share_seconds: int
    account_reward: int
    now: int


@dataclass(frozen=True)
class UnstakeOutcome:
    shares_burned: int
    share_seconds_burned: int
    reward: int
    forfeit: int
    chunks: List[ConsumedChunk] = field(default_factory=list)


def bonus_multiplier(age_sec: int, *, start_bonus: int, bonus_period_sec: int) -> Fraction:
    """start_bonus% at age 0, rising linearly to 100% at bonus_period_sec."""
    period = int(bonus_period_sec)
    age = min(max(int(age_sec), 0), period)
    start = int(start_bonus)
    return Fraction(start * period + (ONE_HUNDRED_PCT - start) * age, ONE_HUNDRED_PCT * period)


def apply_bonus(amount: int, age_sec: int, *, start_bonus: int, bonus_period_sec: int) -> int:
    m = bonus_multiplier(age_sec, start_bonus=start_bonus, bonus_period_sec=bonus_period_sec)
    return int(amount) * m.numerator // m.denominator


class RewardAccountant:
    """One call's view over state, vaults and settlement.

    Built fresh for every entry point; never outlives the call.
    """

    def __init__(
        self,
        state: GeyserState,
        vaults: CustodyVaults,
        settlement: Settlement,
        params: RewardParams,
    ) -> None:
        self.state = state
        self.vaults = vaults
        self.settlement = settlement
        self.params = params
        self.stakes = StakeLedger(state)
        self.scheduler = UnlockScheduler(state.schedules, capacity=params.max_unlock_schedules)
        self.events: List[GeyserEvent] = []

    # ---- balances (projected through the pending settlement) ----

    def total_locked(self) -> int:
        return self.settlement.balance(self.vaults.locked)

    def total_unlocked(self) -> int:
        return self.settlement.balance(self.vaults.unlocked)

    def total_staked(self) -> int:
        return self.settlement.balance(self.vaults.staking)

    def total_staked_for(self, account: str) -> int:
        totals = self.stakes.totals(account)
        if totals is None:
            return 0
        return tokens_for_shares(
            totals.staking_shares,
            total_shares=self.state.total_staking_shares,
            pool_balance=self.total_staked(),
        )

    # ---- unlock pass ----

    def unlock_tokens(self, now: int) -> int:
        st = self.state
        locked_tokens = self.total_locked()
        if st.total_locked_shares == 0:
            amount = locked_tokens
        else:
            shares = self.scheduler.advance_all(now)
            amount = tokens_for_shares(shares, total_shares=st.total_locked_shares, pool_balance=locked_tokens)
            st.total_locked_shares -= shares

        if amount > 0:
            self.settlement.move(self.vaults.locked, self.vaults.unlocked, amount)
            self.events.append(
                GeyserEvent(
                    TOKENS_UNLOCKED,
                    int(now),
                    {
                        "amount": amount,
                        "total": self.total_locked(),
                        "total_unlocked": self.total_unlocked(),
                    },
                )
            )
        return amount

    def update_accounting(self, now: int, account: Optional[str] = None) -> AccountingSnapshot:
        # Share-seconds first: a clock regression must fail before anything moves.
        self.stakes.accrue(now, account)
        self.unlock_tokens(now)

        totals = self.stakes.totals(account) if account is not None else None
        acct_ss = totals.share_seconds if totals is not None else 0
        global_ss = self.state.total_share_seconds
        unlocked = self.total_unlocked()
        reward = unlocked * acct_ss // global_ss if global_ss > 0 else 0

        return AccountingSnapshot(
            total_locked=self.total_locked(),
            total_unlocked=unlocked,
            account_share_seconds=acct_ss,
            global_share_seconds=global_ss,
            account_reward=reward,
            now=int(now),
        )

    # ---- lock ----

    def lock(self, *, owner: str, spender: str, amount: int, duration_sec: int, now: int) -> UnlockSchedule:
        self.scheduler.ensure_capacity()
        st = self.state
        minted = shares_for_deposit(
            amount,
            total_shares=st.total_locked_shares,
            pool_balance=self.total_locked(),
            initial_shares_per_token=self.params.initial_shares_per_token,
        )
        sched = self.scheduler.add(locked_shares=minted, now=now, duration_sec=duration_sec)
        st.total_locked_shares += minted
        self.settlement.deposit(self.vaults.locked, owner=owner, spender=spender, amount=amount)
        self.events.append(
            GeyserEvent(
                TOKENS_LOCKED,
                int(now),
                {"amount": int(amount), "total": self.total_locked(), "duration_sec": int(duration_sec)},
            )
        )
        return sched

    # ---- unstake ----

    def staking_shares_for(self, amount: int) -> int:
        return shares_for_withdrawal(
            amount,
            total_shares=self.state.total_staking_shares,
            pool_balance=self.total_staked(),
        )

    def unstake(self, account: str, *, amount: int, now: int) -> UnstakeOutcome:
        """Burn `amount` worth of the account's newest stakes and size the reward.

        Each consumed chunk earns unlocked * chunk_share_seconds / global_share_seconds,
        discounted by the bonus multiplier of its own age. The discount is the
        forfeit; where it goes depends on params.forfeit_policy. Expects
        update_accounting() to have run at `now`.
        """
        p = self.params
        shares = self.staking_shares_for(amount)
        chunks = self.stakes.consume_lifo(account, shares=shares, now=now)

        global_ss = self.state.total_share_seconds
        unlocked = self.total_unlocked()
        burned_ss = 0
        reward = 0
        forfeit = 0
        for ch in chunks:
            ss = ch.share_seconds
            burned_ss += ss
            base = unlocked * ss // global_ss if global_ss > 0 else 0
            paid = apply_bonus(base, ch.age_sec, start_bonus=p.start_bonus, bonus_period_sec=p.bonus_period_sec)
            reward += paid
            forfeit += base - paid

        self.stakes.burn(account, shares=shares, share_seconds=burned_ss)
        return UnstakeOutcome(
            shares_burned=shares,
            share_seconds_burned=burned_ss,
            reward=reward,
            forfeit=forfeit,
            chunks=chunks,
        )

    def pay_unstake(self, account: str, *, amount: int, outcome: UnstakeOutcome) -> None:
        self.settlement.withdraw(self.vaults.staking, recipient=account, amount=amount)
        self.settlement.withdraw(self.vaults.unlocked, recipient=account, amount=outcome.reward)
        if self.params.forfeit_policy == FORFEIT_BURN:
            self.settlement.withdraw(self.vaults.unlocked, recipient=self.params.forfeit_sink, amount=outcome.forfeit)
