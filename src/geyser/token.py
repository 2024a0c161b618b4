# src/geyser/token.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

Json = Dict[str, Any]


@runtime_checkable
class FungibleToken(Protocol):
    """The token surface the geyser consumes.

    Implementations must raise (any exception) on insufficient balance or
    allowance and must not move funds when they raise.
    """

    address: str

    def balance_of(self, account: str) -> int: ...

    def transfer(self, sender: str, recipient: str, amount: int) -> None: ...

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None: ...


@dataclass
class TokenError(Exception):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


TransferHook = Callable[[str, str, int], None]


class InMemoryToken:
    """ERC20-style in-process token ledger.

    Used by the test harness and by local simulations. Balances and
    allowances are plain ints keyed by account string.
    """

    def __init__(self, address: str, *, symbol: str = "TKN", decimals: int = 18) -> None:
        self.address = str(address)
        self.symbol = str(symbol)
        self.decimals = int(decimals)
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply = 0
        # Called after every balance move as hook(sender, recipient, amount); raising undoes the move.
        self.on_transfer: Optional[TransferHook] = None

    def mint(self, account: str, amount: int) -> None:
        amt = int(amount)
        if amt < 0:
            raise TokenError("invalid_amount", "negative_mint", {"amount": amt})
        self._balances[account] = self._balances.get(account, 0) + amt
        self.total_supply += amt

    def balance_of(self, account: str) -> int:
        return int(self._balances.get(account, 0))

    def allowance(self, owner: str, spender: str) -> int:
        return int(self._allowances.get((owner, spender), 0))

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._allowances[(owner, spender)] = int(amount)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        self._move(sender, recipient, int(amount))

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        amt = int(amount)
        allowed = self.allowance(owner, spender)
        if allowed < amt:
            raise TokenError(
                "insufficient_allowance",
                "transfer_amount_exceeds_allowance",
                {"owner": owner, "spender": spender, "allowance": allowed, "amount": amt},
            )
        self._move(owner, recipient, amt)
        self._allowances[(owner, spender)] = allowed - amt

    def _move(self, sender: str, recipient: str, amt: int) -> None:
        if amt < 0:
            raise TokenError("invalid_amount", "negative_transfer", {"amount": amt})
        if not recipient:
            raise TokenError("invalid_recipient", "empty_recipient", {})
        bal = self.balance_of(sender)
        if bal < amt:
            raise TokenError(
                "insufficient_balance",
                "transfer_amount_exceeds_balance",
                {"account": sender, "balance": bal, "amount": amt},
            )
        self._balances[sender] = bal - amt
        self._balances[recipient] = self.balance_of(recipient) + amt
        if self.on_transfer is None:
            return
        try:
            self.on_transfer(sender, recipient, amt)
        except Exception:
            # A rejecting hook vetoes the transfer.
            self._balances[recipient] -= amt
            self._balances[sender] += amt
            raise
