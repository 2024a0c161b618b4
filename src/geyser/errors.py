# src/geyser/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class GeyserError(Exception):
    """Canonical error type for geyser entry points.

    Every subclass aborts the whole call; the geyser restores its state
    snapshot before the exception leaves the entry point.
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


def _kind(code: str):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        GeyserError.__init__(self, code, reason, details)

    return __init__


class InvalidAmount(GeyserError):
    __init__ = _kind("invalid_amount")


class InsufficientStake(GeyserError):
    __init__ = _kind("insufficient_stake")


class TransferFailed(GeyserError):
    __init__ = _kind("transfer_failed")


class Unauthorized(GeyserError):
    __init__ = _kind("unauthorized")


class ScheduleCapReached(GeyserError):
    __init__ = _kind("schedule_cap_reached")


class InvalidBeneficiary(GeyserError):
    __init__ = _kind("invalid_beneficiary")


class CannotRescueHeldToken(GeyserError):
    __init__ = _kind("cannot_rescue_held_token")


class ConstructionInvalid(GeyserError):
    __init__ = _kind("construction_invalid")


class ClockRegression(GeyserError):
    __init__ = _kind("clock_regression")


class ReentrantCall(GeyserError):
    __init__ = _kind("reentrant_call")


class InvalidPool(GeyserError):
    __init__ = _kind("invalid_pool")


__all__ = [
    "GeyserError",
    "InvalidAmount",
    "InsufficientStake",
    "TransferFailed",
    "Unauthorized",
    "ScheduleCapReached",
    "InvalidBeneficiary",
    "CannotRescueHeldToken",
    "ConstructionInvalid",
    "ClockRegression",
    "ReentrantCall",
    "InvalidPool",
]
