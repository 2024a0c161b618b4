# src/geyser/geyser.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, List, Optional

from geyser.access import AccessControl
from geyser.clock import Clock
from geyser.constants import (
    BURN_ADDRESS,
    DEFAULT_BONUS_PERIOD_SEC,
    DEFAULT_INITIAL_SHARES_PER_TOKEN,
    DEFAULT_MAX_UNLOCK_SCHEDULES,
    DEFAULT_START_BONUS,
    FORFEIT_BURN,
    FORFEIT_POLICIES,
    MAX_UINT256,
    ONE_HUNDRED_PCT,
    POOL_STAKING,
    ZERO_ADDRESS,
)
from geyser.errors import (
    CannotRescueHeldToken,
    ConstructionInvalid,
    GeyserError,
    InsufficientStake,
    InvalidAmount,
    InvalidBeneficiary,
    ReentrantCall,
    Unauthorized,
)
from geyser.events import STAKED, TOKENS_CLAIMED, UNSTAKED, EventLog, GeyserEvent
from geyser.ledger.rewards import AccountingSnapshot, RewardAccountant, RewardParams
from geyser.ledger.shares import shares_for_deposit, tokens_for_shares
from geyser.ledger.stakes import StakeRecord
from geyser.ledger.state import GeyserState
from geyser.ledger.unlocks import UnlockSchedule
from geyser.ledger.vaults import CustodyVaults, Settlement
from geyser.structured_logging import log_event
from geyser.token import FungibleToken

if TYPE_CHECKING:  # pragma: no cover
    from geyser.config import GeyserConfig
    from geyser.store import SqliteGeyserStore

_log = logging.getLogger("geyser.ledger")


def _require_amount(v: Any, *, field: str = "amount") -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidAmount(f"{field}_must_be_int", {field: repr(v)})
    if v <= 0:
        raise InvalidAmount(f"{field}_must_be_positive", {field: v})
    if v > MAX_UINT256:
        raise InvalidAmount(f"{field}_out_of_range", {field: v})
    return v


class TokenGeyser:
    """Staking pool that vests locked rewards to stakers by share-seconds.

    Every public mutating method is one serialized, all-or-nothing call:
    the state is snapshotted on entry, token transfers are queued while the
    ledger mutates, and the queue runs only after the state is final. Any
    error restores the snapshot.
    """

    def __init__(
        self,
        *,
        staking_token: FungibleToken,
        distribution_token: FungibleToken,
        access: AccessControl,
        clock: Clock,
        max_unlock_schedules: int = DEFAULT_MAX_UNLOCK_SCHEDULES,
        start_bonus: int = DEFAULT_START_BONUS,
        bonus_period_sec: int = DEFAULT_BONUS_PERIOD_SEC,
        initial_shares_per_token: int = DEFAULT_INITIAL_SHARES_PER_TOKEN,
        geyser_id: str = "geyser",
        forfeit_policy: str = FORFEIT_BURN,
        forfeit_sink: str = BURN_ADDRESS,
        store: Optional["SqliteGeyserStore"] = None,
    ) -> None:
        if int(start_bonus) > ONE_HUNDRED_PCT or int(start_bonus) < 0:
            raise ConstructionInvalid("start_bonus_too_high", {"start_bonus": start_bonus})
        if int(bonus_period_sec) <= 0:
            raise ConstructionInvalid("bonus_period_is_zero", {"bonus_period_sec": bonus_period_sec})
        if int(max_unlock_schedules) <= 0:
            raise ConstructionInvalid("max_unlock_schedules_is_zero", {"max_unlock_schedules": max_unlock_schedules})
        if int(initial_shares_per_token) <= 0:
            raise ConstructionInvalid(
                "initial_shares_per_token_is_zero", {"initial_shares_per_token": initial_shares_per_token}
            )
        if forfeit_policy not in FORFEIT_POLICIES:
            raise ConstructionInvalid("unknown_forfeit_policy", {"forfeit_policy": forfeit_policy})
        if forfeit_policy == FORFEIT_BURN and not str(forfeit_sink or "").strip():
            raise ConstructionInvalid("forfeit_sink_required", {"forfeit_policy": forfeit_policy})
        gid = str(geyser_id or "").strip()
        if not gid:
            raise ConstructionInvalid("geyser_id_is_empty", {})

        self.address = gid
        self.access = access
        self.clock = clock
        self.vaults = CustodyVaults(gid, staking_token=staking_token, distribution_token=distribution_token)
        self.params = RewardParams(
            start_bonus=int(start_bonus),
            bonus_period_sec=int(bonus_period_sec),
            initial_shares_per_token=int(initial_shares_per_token),
            max_unlock_schedules=int(max_unlock_schedules),
            forfeit_policy=str(forfeit_policy),
            forfeit_sink=str(forfeit_sink),
        )
        self.events = EventLog()
        self.store = store
        self._in_call = False

        if store is not None and store.exists():
            self.state = store.read()
        else:
            self.state = GeyserState(last_accounting_ts=int(clock.now()))
            if store is not None:
                store.write(self.state)

    @classmethod
    def from_config(
        cls,
        cfg: "GeyserConfig",
        *,
        staking_token: FungibleToken,
        distribution_token: FungibleToken,
        access: AccessControl,
        clock: Clock,
        store: Optional["SqliteGeyserStore"] = None,
    ) -> "TokenGeyser":
        return cls(
            staking_token=staking_token,
            distribution_token=distribution_token,
            access=access,
            clock=clock,
            max_unlock_schedules=cfg.max_unlock_schedules,
            start_bonus=cfg.start_bonus,
            bonus_period_sec=cfg.bonus_period_sec,
            initial_shares_per_token=cfg.initial_shares_per_token,
            geyser_id=cfg.geyser_id,
            forfeit_policy=cfg.forfeit_policy,
            forfeit_sink=cfg.forfeit_sink,
            store=store,
        )

    # ---- call plumbing ----

    @contextmanager
    def _call(self, op: str, caller: str) -> Iterator[RewardAccountant]:
        if self._in_call:
            raise ReentrantCall("geyser_call_in_progress", {"op": op, "caller": caller})
        self._in_call = True
        snapshot = self.state.clone()
        acct = RewardAccountant(self.state, self.vaults, Settlement(), self.params)
        try:
            yield acct
            acct.settlement.execute()
        except Exception as e:
            self.state = snapshot
            log_event(
                _log,
                "geyser_call_failed",
                level=logging.WARNING,
                op=op,
                caller=caller,
                code=getattr(e, "code", type(e).__name__),
                reason=getattr(e, "reason", str(e)),
            )
            raise
        finally:
            self._in_call = False

        if self.store is not None:
            self.store.write(self.state)
        self.events.publish(acct.events)

    def _preview(self) -> RewardAccountant:
        return RewardAccountant(self.state.clone(), self.vaults, Settlement(), self.params)

    def _now(self) -> int:
        return int(self.clock.now())

    def _require_owner(self, caller: str, op: str) -> None:
        if not self.access.is_owner(caller):
            raise Unauthorized("caller_is_not_the_owner", {"op": op, "caller": caller})

    # ---- staking ----

    def stake(self, caller: str, amount: int, data: bytes = b"") -> int:
        """Stake `amount` for the caller. Returns the caller's new staked total."""
        return self._stake_for(caller, caller, amount, op="stake")

    def stake_for(self, caller: str, beneficiary: str, amount: int, data: bytes = b"") -> int:
        self._require_owner(caller, "stake_for")
        b = str(beneficiary or "").strip()
        if not b or b == ZERO_ADDRESS:
            raise InvalidBeneficiary("beneficiary_is_zero_address", {"beneficiary": beneficiary})
        return self._stake_for(caller, b, amount, op="stake_for")

    def _stake_for(self, payer: str, beneficiary: str, amount: int, *, op: str) -> int:
        amt = _require_amount(amount)
        with self._call(op, payer) as acct:
            now = self._now()
            acct.update_accounting(now, beneficiary)
            minted = shares_for_deposit(
                amt,
                total_shares=acct.state.total_staking_shares,
                pool_balance=acct.total_staked(),
                initial_shares_per_token=self.params.initial_shares_per_token,
            )
            acct.stakes.record_stake(beneficiary, shares=minted, now=now)
            acct.settlement.deposit(self.vaults.staking, owner=payer, spender=self.address, amount=amt)
            total_for = acct.total_staked_for(beneficiary)
            acct.events.append(GeyserEvent(STAKED, now, {"user": beneficiary, "amount": amt, "total": total_for}))
        return total_for

    def unstake(self, caller: str, amount: int, data: bytes = b"") -> int:
        """Unstake `amount` and claim the reward it earned. Returns the reward paid."""
        amt = _require_amount(amount)
        with self._call("unstake", caller) as acct:
            now = self._now()
            acct.update_accounting(now, caller)
            staked = acct.total_staked_for(caller)
            if amt > staked:
                raise InsufficientStake("unstake_exceeds_staked", {"account": caller, "amount": amt, "staked": staked})

            outcome = acct.unstake(caller, amount=amt, now=now)
            acct.pay_unstake(caller, amount=amt, outcome=outcome)

            if acct.state.total_staking_shares > 0 and acct.total_staked() <= 0:
                raise GeyserError(
                    "invariant_violation",
                    "staking_shares_without_stake",
                    {"total_staking_shares": acct.state.total_staking_shares},
                )

            acct.events.append(
                GeyserEvent(UNSTAKED, now, {"user": caller, "amount": amt, "total": acct.total_staked_for(caller)})
            )
            if outcome.reward > 0:
                acct.events.append(GeyserEvent(TOKENS_CLAIMED, now, {"user": caller, "amount": outcome.reward}))
        return outcome.reward

    def unstake_query(self, caller: str, amount: int) -> int:
        """Reward an unstake of `amount` would pay right now. Mutates nothing."""
        amt = _require_amount(amount)
        acct = self._preview()
        now = self._now()
        acct.update_accounting(now, caller)
        staked = acct.total_staked_for(caller)
        if amt > staked:
            raise InsufficientStake("unstake_exceeds_staked", {"account": caller, "amount": amt, "staked": staked})
        return acct.unstake(caller, amount=amt, now=now).reward

    # ---- rewards ----

    def lock_tokens(self, caller: str, amount: int, duration_sec: int) -> UnlockSchedule:
        self._require_owner(caller, "lock_tokens")
        amt = _require_amount(amount)
        dur = _require_amount(duration_sec, field="duration_sec")
        with self._call("lock_tokens", caller) as acct:
            now = self._now()
            acct.update_accounting(now, caller)
            sched = acct.lock(owner=caller, spender=self.address, amount=amt, duration_sec=dur, now=now)
        return UnlockSchedule(**sched.to_json())

    def update_accounting(self, caller: Optional[str] = None) -> AccountingSnapshot:
        with self._call("update_accounting", caller or "") as acct:
            snap = acct.update_accounting(self._now(), caller)
        return snap

    # ---- rescue ----

    def rescue_funds(
        self,
        caller: str,
        token: FungibleToken,
        to: str,
        amount: int,
        *,
        pool: str = POOL_STAKING,
    ) -> None:
        """Send a foreign token that landed in a vault to `to`."""
        self._require_owner(caller, "rescue_funds")
        if self.vaults.is_held_token(token):
            raise CannotRescueHeldToken(
                "cannot_claim_token_held_by_the_contract",
                {"token": getattr(token, "address", ""), "pool": pool},
            )
        recipient = str(to or "").strip()
        if not recipient or recipient == ZERO_ADDRESS:
            raise InvalidBeneficiary("rescue_recipient_is_zero_address", {"to": to})
        amt = _require_amount(amount)
        src = self.vaults.pool(pool)
        with self._call("rescue_funds", caller) as acct:
            acct.settlement.rescue(src, token, recipient=recipient, amount=amt)
        log_event(_log, "geyser_rescue", token=token.address, pool=src.name, to=recipient, amount=amt)

    def rescue_funds_from_staking_pool(self, caller: str, token: FungibleToken, to: str, amount: int) -> None:
        self.rescue_funds(caller, token, to, amount, pool=POOL_STAKING)

    # ---- views ----

    @property
    def staking_token(self) -> FungibleToken:
        return self.vaults.staking.token

    @property
    def token(self) -> FungibleToken:
        return self.vaults.staking.token

    @property
    def distribution_token(self) -> FungibleToken:
        return self.vaults.unlocked.token

    def supports_history(self) -> bool:
        return False

    def total_staked(self) -> int:
        return self.vaults.staking.balance()

    def total_staked_for(self, account: str) -> int:
        totals = self.state.accounts.get(account)
        if totals is None:
            return 0
        return tokens_for_shares(
            totals.staking_shares,
            total_shares=self.state.total_staking_shares,
            pool_balance=self.total_staked(),
        )

    def total_staking_shares(self) -> int:
        return self.state.total_staking_shares

    def total_locked(self) -> int:
        return self.vaults.locked.balance()

    def total_unlocked(self) -> int:
        return self.vaults.unlocked.balance()

    def unlock_schedule_count(self) -> int:
        return len(self.state.schedules)

    def unlock_schedules(self, index: int) -> UnlockSchedule:
        return UnlockSchedule(**self.state.schedules[int(index)].to_json())

    def stakes_for(self, account: str) -> List[StakeRecord]:
        return [StakeRecord(r.shares, r.timestamp) for r in self.state.arena.iter_records(account)]

    def stakers(self) -> List[str]:
        return self.state.arena.accounts()
