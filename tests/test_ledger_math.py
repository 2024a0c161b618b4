# tests/test_ledger_math.py
from __future__ import annotations

from fractions import Fraction

import pytest

from geyser.errors import ClockRegression, InsufficientStake, InvalidAmount, ScheduleCapReached
from geyser.ledger.rewards import apply_bonus, bonus_multiplier
from geyser.ledger.shares import shares_for_deposit, shares_for_withdrawal, tokens_for_shares
from geyser.ledger.stakes import StakeArena, StakeLedger, StakeRecord
from geyser.ledger.state import GeyserState
from geyser.ledger.unlocks import UnlockSchedule, UnlockScheduler

DAY = 86_400


# ---- shares ----


def test_first_deposit_uses_initial_rate() -> None:
    assert shares_for_deposit(5, total_shares=0, pool_balance=0, initial_shares_per_token=10**6) == 5 * 10**6


def test_deposit_into_empty_pool_with_leftover_shares_uses_initial_rate() -> None:
    assert shares_for_deposit(5, total_shares=100, pool_balance=0, initial_shares_per_token=7) == 35


def test_deposit_mints_proportionally() -> None:
    assert shares_for_deposit(50, total_shares=300, pool_balance=150, initial_shares_per_token=1) == 100


def test_deposit_that_mints_nothing_is_rejected() -> None:
    with pytest.raises(InvalidAmount) as e:
        shares_for_deposit(1, total_shares=1, pool_balance=10, initial_shares_per_token=1)
    assert e.value.reason == "deposit_too_small"


def test_withdrawal_burns_proportionally() -> None:
    assert shares_for_withdrawal(30, total_shares=300, pool_balance=150) == 60
    assert shares_for_withdrawal(30, total_shares=300, pool_balance=0) == 0
    with pytest.raises(InvalidAmount):
        shares_for_withdrawal(1, total_shares=1, pool_balance=10)


def test_tokens_for_shares_floors() -> None:
    assert tokens_for_shares(1, total_shares=3, pool_balance=10) == 3
    assert tokens_for_shares(5, total_shares=0, pool_balance=10) == 0


# ---- bonus ----


def test_bonus_multiplier_is_linear_then_flat() -> None:
    assert bonus_multiplier(0, start_bonus=50, bonus_period_sec=DAY) == Fraction(1, 2)
    assert bonus_multiplier(DAY // 2, start_bonus=50, bonus_period_sec=DAY) == Fraction(3, 4)
    assert bonus_multiplier(DAY, start_bonus=50, bonus_period_sec=DAY) == 1
    assert bonus_multiplier(10 * DAY, start_bonus=50, bonus_period_sec=DAY) == 1
    assert bonus_multiplier(0, start_bonus=100, bonus_period_sec=DAY) == 1
    assert bonus_multiplier(0, start_bonus=0, bonus_period_sec=DAY) == 0


def test_apply_bonus_floors() -> None:
    assert apply_bonus(1000, DAY // 2, start_bonus=50, bonus_period_sec=DAY) == 750
    assert apply_bonus(3, 0, start_bonus=50, bonus_period_sec=DAY) == 1
    assert apply_bonus(3, DAY, start_bonus=50, bonus_period_sec=DAY) == 3


# ---- unlock schedules ----


def _mk_schedule(shares: int = 1000, start: int = 0, duration: int = 100) -> UnlockSchedule:
    return UnlockSchedule(
        initial_locked_shares=shares,
        unlocked_shares=0,
        last_unlock_ts=start,
        end_ts=start + duration,
        duration_sec=duration,
    )


def test_schedule_advances_linearly() -> None:
    s = _mk_schedule()
    assert s.advance(25) == 250
    assert s.advance(25) == 0
    assert s.advance(50) == 250
    assert s.unlocked_shares == 500
    assert s.last_unlock_ts == 50


def test_schedule_sweeps_remainder_at_end() -> None:
    s = _mk_schedule(shares=10, duration=3)
    assert s.advance(1) == 3
    assert s.advance(2) == 3
    assert s.advance(3) == 4
    assert s.is_done
    assert s.advance(1000) == 0


def test_schedule_json_round_trip() -> None:
    s = _mk_schedule()
    s.advance(10)
    assert UnlockSchedule.from_json(s.to_json()) == s


def test_scheduler_enforces_capacity_and_duration() -> None:
    sched = UnlockScheduler([], capacity=2)
    sched.add(locked_shares=10, now=0, duration_sec=10)
    with pytest.raises(InvalidAmount):
        sched.add(locked_shares=10, now=0, duration_sec=0)
    sched.add(locked_shares=10, now=0, duration_sec=20)
    with pytest.raises(ScheduleCapReached):
        sched.add(locked_shares=10, now=0, duration_sec=10)
    assert len(sched) == 2

    assert sched.advance_all(10) == 15
    assert sched.remaining_shares() == 5


# ---- stake arena ----


def test_arena_is_lifo_per_account() -> None:
    a = StakeArena()
    a.push("x", StakeRecord(1, 10))
    a.push("x", StakeRecord(2, 20))
    a.push("y", StakeRecord(3, 30))

    assert a.count("x") == 2
    assert a.tail("x") == StakeRecord(2, 20)
    assert a.pop("x") == StakeRecord(2, 20)
    assert a.pop("x") == StakeRecord(1, 10)
    assert a.count("x") == 0
    assert a.tail("x") is None
    assert a.accounts() == ["y"]
    with pytest.raises(IndexError):
        a.pop("x")


def test_arena_json_round_trip_preserves_order() -> None:
    a = StakeArena()
    for i in range(3):
        a.push("x", StakeRecord(i + 1, 100 + i))
    b = StakeArena.from_json(a.to_json())
    assert list(b.iter_records("x")) == list(a.iter_records("x"))


# ---- share-seconds ----


def _mk_ledger(ts: int = 0):
    st = GeyserState(last_accounting_ts=ts)
    return st, StakeLedger(st)


def test_accrue_tracks_global_and_account_share_seconds() -> None:
    st, led = _mk_ledger()
    led.record_stake("x", shares=10, now=0)
    led.record_stake("y", shares=30, now=0)

    led.accrue(5, "x")

    assert st.total_share_seconds == 200
    assert led.totals("x").share_seconds == 50
    assert led.totals("y").share_seconds == 0
    assert led.totals("y").last_accounting_ts == 0

    led.accrue(5, "x")
    assert st.total_share_seconds == 200
    assert led.totals("x").share_seconds == 50


def test_accrue_rejects_clock_regression() -> None:
    st, led = _mk_ledger(ts=100)
    with pytest.raises(ClockRegression) as e:
        led.accrue(99)
    assert e.value.reason == "timestamp_before_last_accounting"
    assert st.last_accounting_ts == 100


def test_accrue_does_not_materialise_unknown_accounts() -> None:
    st, led = _mk_ledger()
    led.accrue(10, "ghost")
    assert "ghost" not in st.accounts


def test_consume_lifo_reports_chunk_ages() -> None:
    st, led = _mk_ledger()
    led.record_stake("x", shares=10, now=0)
    led.record_stake("x", shares=20, now=40)

    chunks = led.consume_lifo("x", shares=25, now=100)

    assert [(c.shares, c.age_sec) for c in chunks] == [(20, 60), (5, 100)]
    assert sum(c.share_seconds for c in chunks) == 20 * 60 + 5 * 100
    assert [r.shares for r in st.arena.iter_records("x")] == [5]


def test_consume_lifo_rejects_more_than_held() -> None:
    _, led = _mk_ledger()
    led.record_stake("x", shares=10, now=0)
    with pytest.raises(InsufficientStake):
        led.consume_lifo("x", shares=11, now=5)


def test_burn_drops_emptied_accounts() -> None:
    st, led = _mk_ledger()
    led.record_stake("x", shares=10, now=0)
    led.accrue(10, "x")
    chunks = led.consume_lifo("x", shares=10, now=10)
    led.burn("x", shares=10, share_seconds=sum(c.share_seconds for c in chunks))

    assert "x" not in st.accounts
    assert st.total_staking_shares == 0
    assert st.total_share_seconds == 0


def test_state_json_round_trip_and_version_check() -> None:
    st, led = _mk_ledger(ts=7)
    led.record_stake("x", shares=10, now=7)
    st.schedules.append(_mk_schedule(start=7))
    st.total_locked_shares = 1000

    back = GeyserState.from_json(st.to_json())
    assert back.to_json() == st.to_json()

    bad = st.to_json()
    bad["state_version"] = 99
    with pytest.raises(ValueError):
        GeyserState.from_json(bad)
    with pytest.raises(ValueError):
        GeyserState.from_json([])  # type: ignore[arg-type]
