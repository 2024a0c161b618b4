# src/geyser/api/schemas.py
from __future__ import annotations

"""Pydantic request schemas for the query API.

Amounts are integer base units. JSON numbers are accepted as-is; strings of
digits are accepted too because most JS clients cannot hold 18-decimal
amounts in a double.
"""

from pydantic import BaseModel, Field, field_validator


class UnstakeQueryRequest(BaseModel):
    account: str = Field(..., min_length=1, description="Staker account id")
    amount: int = Field(..., gt=0, description="Amount to unstake, in base units")

    model_config = {"extra": "forbid"}

    @field_validator("account")
    @classmethod
    def _strip_account(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("account must be non-empty")
        return s
