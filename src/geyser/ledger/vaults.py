# src/geyser/ledger/vaults.py
from __future__ import annotations

"""Custody vaults and per-call settlement.

The geyser never moves tokens while it is still mutating its own state.
Every transfer a call needs is queued on a Settlement; balances the ledger
reads during the call are projected through that queue. Once the state is
final the queue is executed in phase order:

  1. inbound deposits (transfer_from a user)  - the only step expected to fail
  2. vault-to-vault moves (locked -> unlocked)
  3. outbound withdrawals and rescues

A failing deposit therefore leaves no executed transfer behind. If a later
transfer fails, the ones already executed are reversed newest first so the
custody balances match the restored state again.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from geyser.constants import POOL_LOCKED, POOL_STAKING, POOL_UNLOCKED, POOLS
from geyser.errors import GeyserError, InvalidPool, TransferFailed
from geyser.structured_logging import log_event
from geyser.token import FungibleToken

Json = Dict[str, Any]

_log = logging.getLogger("geyser.ledger")

_PHASE_DEPOSIT = 0
_PHASE_MOVE = 1
_PHASE_WITHDRAW = 2


@dataclass(frozen=True)
class TokenPool:
    name: str
    address: str
    token: FungibleToken

    def balance(self) -> int:
        return int(self.token.balance_of(self.address))


class CustodyVaults:
    """The three custody sub-accounts of one geyser."""

    def __init__(self, geyser_id: str, *, staking_token: FungibleToken, distribution_token: FungibleToken) -> None:
        gid = str(geyser_id).strip()
        self.staking = TokenPool(POOL_STAKING, f"{gid}/{POOL_STAKING}", staking_token)
        self.locked = TokenPool(POOL_LOCKED, f"{gid}/{POOL_LOCKED}", distribution_token)
        self.unlocked = TokenPool(POOL_UNLOCKED, f"{gid}/{POOL_UNLOCKED}", distribution_token)

    def pool(self, name: str) -> TokenPool:
        n = str(name or "").strip().lower()
        if n not in POOLS:
            raise InvalidPool("unknown_pool", {"pool": name, "expected": list(POOLS)})
        return getattr(self, n)

    def all(self) -> Tuple[TokenPool, TokenPool, TokenPool]:
        return (self.staking, self.locked, self.unlocked)

    def is_held_token(self, token: FungibleToken) -> bool:
        addr = str(getattr(token, "address", "") or "")
        return addr in {p.token.address for p in self.all()}


@dataclass
class _Transfer:
    phase: int
    token: FungibleToken
    sender: str
    recipient: str
    amount: int
    spender: Optional[str] = None


class Settlement:
    """Transfers queued by one call, executed after its state is final."""

    def __init__(self) -> None:
        self._queue: List[_Transfer] = []
        self._delta: Dict[Tuple[str, str], int] = {}
        self.executed = False

    def _shift(self, token: FungibleToken, account: str, amount: int) -> None:
        key = (str(token.address), str(account))
        self._delta[key] = self._delta.get(key, 0) + int(amount)

    def balance(self, pool: TokenPool) -> int:
        """Pool balance as it will be once the queued transfers settle."""
        return pool.balance() + self._delta.get((str(pool.token.address), pool.address), 0)

    def deposit(self, pool: TokenPool, *, owner: str, spender: str, amount: int) -> None:
        amt = int(amount)
        if amt <= 0:
            return
        self._queue.append(_Transfer(_PHASE_DEPOSIT, pool.token, owner, pool.address, amt, spender=spender))
        self._shift(pool.token, pool.address, amt)

    def move(self, src: TokenPool, dst: TokenPool, amount: int) -> None:
        amt = int(amount)
        if amt <= 0:
            return
        self._require_funds(src, amt)
        self._queue.append(_Transfer(_PHASE_MOVE, src.token, src.address, dst.address, amt))
        self._shift(src.token, src.address, -amt)
        self._shift(dst.token, dst.address, amt)

    def withdraw(self, pool: TokenPool, *, recipient: str, amount: int) -> None:
        amt = int(amount)
        if amt <= 0:
            return
        self._require_funds(pool, amt)
        self._queue.append(_Transfer(_PHASE_WITHDRAW, pool.token, pool.address, recipient, amt))
        self._shift(pool.token, pool.address, -amt)

    def rescue(self, pool: TokenPool, token: FungibleToken, *, recipient: str, amount: int) -> None:
        amt = int(amount)
        if amt <= 0:
            return
        self._queue.append(_Transfer(_PHASE_WITHDRAW, token, pool.address, recipient, amt))
        self._shift(token, pool.address, -amt)

    def _require_funds(self, pool: TokenPool, amount: int) -> None:
        have = self.balance(pool)
        if have < amount:
            raise TransferFailed(
                "insufficient_vault_balance",
                {"pool": pool.name, "balance": have, "amount": int(amount)},
            )

    def pending(self) -> List[Json]:
        return [
            {
                "phase": t.phase,
                "token": t.token.address,
                "sender": t.sender,
                "recipient": t.recipient,
                "amount": t.amount,
            }
            for t in self._queue
        ]

    def execute(self) -> None:
        if self.executed:
            raise RuntimeError("settlement already executed")
        self.executed = True
        done: List[_Transfer] = []
        for t in sorted(self._queue, key=lambda x: x.phase):
            try:
                if t.spender is not None:
                    t.token.transfer_from(t.spender, t.sender, t.recipient, t.amount)
                else:
                    t.token.transfer(t.sender, t.recipient, t.amount)
            except Exception as e:
                self._reverse(done)
                if isinstance(e, GeyserError):
                    raise
                raise TransferFailed(
                    "token_transfer_failed",
                    {
                        "token": t.token.address,
                        "sender": t.sender,
                        "recipient": t.recipient,
                        "amount": t.amount,
                        "error": str(e),
                    },
                ) from e
            done.append(t)

    def _reverse(self, done: List[_Transfer]) -> None:
        # Undo executed transfers newest first. Spent allowances stay spent.
        for t in reversed(done):
            try:
                t.token.transfer(t.recipient, t.sender, t.amount)
            except Exception as e:
                log_event(
                    _log,
                    "settlement_reversal_failed",
                    level=logging.ERROR,
                    token=t.token.address,
                    sender=t.recipient,
                    recipient=t.sender,
                    amount=t.amount,
                    error=str(e),
                )
                raise TransferFailed(
                    "settlement_reversal_failed",
                    {"token": t.token.address, "sender": t.recipient, "recipient": t.sender, "amount": t.amount},
                ) from e
