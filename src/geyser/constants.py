# src/geyser/constants.py
from __future__ import annotations

"""Ledger constants.

- Token amounts are integer base units (18 decimals for the reference token).
- Shares and share-seconds are unbounded Python ints; inputs are capped at
  the uint256 range so persisted snapshots stay portable.
"""

TOKEN_DECIMALS: int = 18
ONE_TOKEN: int = 10**TOKEN_DECIMALS

MAX_UINT256: int = 2**256 - 1

# Bonus is expressed in whole percent: 0..100
BONUS_DECIMALS: int = 2
ONE_HUNDRED_PCT: int = 10**BONUS_DECIMALS

DEFAULT_INITIAL_SHARES_PER_TOKEN: int = 10**6
DEFAULT_MAX_UNLOCK_SCHEDULES: int = 10
DEFAULT_START_BONUS: int = 50
DEFAULT_BONUS_PERIOD_SEC: int = 86_400

ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"
BURN_ADDRESS: str = "0x000000000000000000000000000000000000dEaD"

# Custody sub-accounts
POOL_STAKING: str = "staking"
POOL_LOCKED: str = "locked"
POOL_UNLOCKED: str = "unlocked"
POOLS = (POOL_STAKING, POOL_LOCKED, POOL_UNLOCKED)

FORFEIT_BURN: str = "burn"
FORFEIT_REDISTRIBUTE: str = "redistribute"
FORFEIT_POLICIES = (FORFEIT_BURN, FORFEIT_REDISTRIBUTE)

SECONDS_PER_YEAR: int = 365 * 24 * 3600
