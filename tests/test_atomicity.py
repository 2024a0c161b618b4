# tests/test_atomicity.py
from __future__ import annotations

import pytest

from geyser.access import OwnerAccess
from geyser.clock import ManualClock
from geyser.constants import BURN_ADDRESS, SECONDS_PER_YEAR
from geyser.errors import ClockRegression, ReentrantCall, TransferFailed
from geyser.events import STAKED
from geyser.geyser import TokenGeyser
from geyser.testing import ALICE, BOB, GENESIS_TS, OWNER, make_geyser, nbt
from geyser.token import InMemoryToken

ONE_YEAR = SECONDS_PER_YEAR


class _SettableClock:
    def __init__(self, t: int) -> None:
        self.t = int(t)

    def now(self) -> int:
        return self.t


def _mk(**kwargs):
    return make_geyser(owner_allowance=nbt(100_000), **kwargs)


def _all_balances(h) -> int:
    g = h.geyser
    holders = [OWNER, ALICE, BOB, BURN_ADDRESS] + [p.address for p in g.vaults.all()]
    return sum(h.token.balance_of(a) for a in holders)


def test_failed_deposit_rolls_back_pending_unlock() -> None:
    h = _mk()
    g = h.geyser
    g.lock_tokens(OWNER, nbt(100), ONE_YEAR)
    h.clock.advance(ONE_YEAR // 2)
    h.token.transfer(OWNER, ALICE, nbt(10))  # funded but never approved

    before = g.state.to_json()
    with pytest.raises(TransferFailed):
        g.stake(ALICE, nbt(10))

    # The unlock computed inside the aborted call must not survive it.
    assert g.state.to_json() == before
    assert g.total_locked() == nbt(100)
    assert g.total_unlocked() == 0
    assert g.unlock_schedules(0).unlocked_shares == 0
    assert h.token.balance_of(ALICE) == nbt(10)

    g.update_accounting()
    assert g.total_unlocked() == nbt(50)


def test_listeners_only_see_settled_calls() -> None:
    h = _mk()
    g = h.geyser
    seen = []
    g.events.subscribe(seen.append)

    with pytest.raises(TransferFailed):
        g.stake(ALICE, nbt(1))
    assert seen == []

    g.stake(OWNER, nbt(1))
    assert [e.name for e in seen] == [STAKED]


def test_clock_regression_aborts_the_call() -> None:
    h = _mk()
    g = h.geyser
    clock = _SettableClock(GENESIS_TS + 100)
    g.clock = clock
    g.stake(OWNER, nbt(10))
    before = g.state.to_json()

    clock.t = GENESIS_TS + 50
    with pytest.raises(ClockRegression) as e:
        g.update_accounting(OWNER)
    assert e.value.code == "clock_regression"
    with pytest.raises(ClockRegression):
        g.stake(OWNER, nbt(10))

    assert g.state.to_json() == before
    assert g.total_staked() == nbt(10)


def test_reentrant_call_is_rejected() -> None:
    h = _mk()
    g = h.geyser
    errors = []

    def hook(sender: str, recipient: str, amount: int) -> None:
        try:
            g.update_accounting(OWNER)
        except ReentrantCall as e:
            errors.append(e)

    h.token.on_transfer = hook
    g.stake(OWNER, nbt(10))
    h.token.on_transfer = None

    assert len(errors) == 1
    assert errors[0].code == "reentrant_call"
    assert g.total_staked_for(OWNER) == nbt(10)

    # The guard is released once the outer call returns.
    g.update_accounting(OWNER)


def test_tokens_are_conserved_across_a_busy_session() -> None:
    h = _mk()
    g = h.geyser
    supply = h.token.total_supply

    g.lock_tokens(OWNER, nbt(1000), ONE_YEAR // 2)
    h.fund(ALICE, 300)
    h.fund(BOB, 200)
    g.stake(ALICE, nbt(300))
    h.clock.advance(3600)
    g.stake_for(OWNER, BOB, nbt(50))
    g.stake(BOB, nbt(150))
    h.clock.advance(ONE_YEAR // 8)
    g.unstake(ALICE, nbt(100))
    g.lock_tokens(OWNER, nbt(500), ONE_YEAR)
    h.clock.advance(600)
    g.unstake(BOB, nbt(200))
    h.clock.advance(ONE_YEAR)
    g.unstake(ALICE, nbt(200))
    g.update_accounting()

    assert _all_balances(h) == supply
    assert g.total_locked() == 0
    assert g.total_staked() == 0
    assert g.total_staking_shares() == 0


def test_vault_balances_match_share_totals() -> None:
    h = _mk()
    g = h.geyser
    h.fund(ALICE, 100)
    g.stake(ALICE, nbt(40))
    g.stake(OWNER, nbt(60))
    h.clock.advance(10)
    g.unstake(OWNER, nbt(15))

    total = g.total_staked_for(ALICE) + g.total_staked_for(OWNER)
    assert total == g.total_staked() == nbt(85)
    assert sum(t.staking_shares for t in g.state.accounts.values()) == g.total_staking_shares()


def _mk_two_token_geyser():
    stake_token = InMemoryToken("0xstk", symbol="STK")
    reward_token = InMemoryToken("0xrwd", symbol="RWD")
    stake_token.mint(OWNER, nbt(1000))
    reward_token.mint(OWNER, nbt(1000))
    clock = ManualClock(GENESIS_TS)
    g = TokenGeyser(
        staking_token=stake_token,
        distribution_token=reward_token,
        access=OwnerAccess(OWNER),
        clock=clock,
    )
    reward_token.approve(OWNER, g.address, nbt(1000))
    stake_token.transfer(OWNER, ALICE, nbt(100))
    stake_token.approve(ALICE, g.address, nbt(100))
    return g, stake_token, reward_token, clock


def test_failed_reward_payout_reverses_principal_and_unlock() -> None:
    g, stake_token, reward_token, clock = _mk_two_token_geyser()
    g.lock_tokens(OWNER, nbt(100), ONE_YEAR)
    g.stake(ALICE, nbt(100))
    clock.advance(ONE_YEAR + 1)
    before = g.state.to_json()

    def refuse_alice(sender: str, recipient: str, amount: int) -> None:
        if recipient == ALICE:
            raise RuntimeError("recipient frozen")

    reward_token.on_transfer = refuse_alice
    with pytest.raises(TransferFailed) as e:
        g.unstake(ALICE, nbt(100))
    assert e.value.reason == "token_transfer_failed"

    # Principal payout and the locked -> unlocked move both ran before the failure.
    assert g.state.to_json() == before
    assert stake_token.balance_of(ALICE) == 0
    assert g.total_staked() == nbt(100)
    assert g.total_staked_for(ALICE) == nbt(100)
    assert g.total_locked() == nbt(100)
    assert g.total_unlocked() == 0
    assert reward_token.balance_of(ALICE) == 0

    reward_token.on_transfer = None
    assert g.unstake(ALICE, nbt(100)) == nbt(100)
    assert stake_token.balance_of(ALICE) == nbt(100)
    assert reward_token.balance_of(ALICE) == nbt(100)
    assert g.total_locked() == 0
    assert g.total_staked() == 0


def test_token_hook_veto_does_not_move_funds() -> None:
    token = InMemoryToken("0xt")
    token.mint(OWNER, 10)

    def veto(sender: str, recipient: str, amount: int) -> None:
        raise RuntimeError("no")

    token.on_transfer = veto
    with pytest.raises(RuntimeError):
        token.transfer(OWNER, ALICE, 4)
    assert token.balance_of(OWNER) == 10
    assert token.balance_of(ALICE) == 0
