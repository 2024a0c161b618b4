# src/geyser/access.py
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AccessControl(Protocol):
    def is_owner(self, caller: str) -> bool: ...


class OwnerAccess:
    """Single-owner gate."""

    def __init__(self, owner: str) -> None:
        o = str(owner or "").strip()
        if not o:
            raise ValueError("owner must be a non-empty string")
        self.owner = o

    def is_owner(self, caller: str) -> bool:
        return str(caller or "").strip() == self.owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        if not self.is_owner(caller):
            raise PermissionError("caller is not the owner")
        n = str(new_owner or "").strip()
        if not n:
            raise ValueError("new_owner must be a non-empty string")
        self.owner = n
