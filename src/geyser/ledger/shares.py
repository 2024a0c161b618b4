# src/geyser/ledger/shares.py
from __future__ import annotations

"""Token amount <-> pool share conversion.

A pool's rate is fixed by its first deposit (initial_shares_per_token) and
is afterwards implied by total_shares / pool_balance. All math is integer
floor division; share totals are large enough that the floor only ever
loses sub-base-unit dust.
"""

from geyser.errors import InvalidAmount


def shares_for_deposit(amount: int, *, total_shares: int, pool_balance: int, initial_shares_per_token: int) -> int:
    amt = int(amount)
    if amt <= 0:
        raise InvalidAmount("amount_must_be_positive", {"amount": amt})
    if int(total_shares) > 0 and int(pool_balance) > 0:
        minted = int(total_shares) * amt // int(pool_balance)
    else:
        minted = amt * int(initial_shares_per_token)
    if minted <= 0:
        raise InvalidAmount("deposit_too_small", {"amount": amt})
    return minted


def shares_for_withdrawal(amount: int, *, total_shares: int, pool_balance: int) -> int:
    amt = int(amount)
    if amt <= 0:
        raise InvalidAmount("amount_must_be_positive", {"amount": amt})
    if int(pool_balance) <= 0:
        return 0
    burned = int(total_shares) * amt // int(pool_balance)
    if burned <= 0:
        raise InvalidAmount("withdrawal_too_small", {"amount": amt})
    return burned


def tokens_for_shares(shares: int, *, total_shares: int, pool_balance: int) -> int:
    if int(total_shares) <= 0:
        return 0
    return int(shares) * int(pool_balance) // int(total_shares)
