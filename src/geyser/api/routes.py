# src/geyser/api/routes.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from geyser.api.errors import error_body
from geyser.api.schemas import UnstakeQueryRequest
from geyser.geyser import TokenGeyser

router = APIRouter(prefix="/v1/geyser")

Json = Dict[str, Any]


def _geyser(request: Request) -> TokenGeyser:
    return request.app.state.geyser


@router.get("/status")
def status(request: Request) -> Json:
    g = _geyser(request)
    p = g.params
    return {
        "ok": True,
        "geyser_id": g.address,
        "staking_token": g.staking_token.address,
        "distribution_token": g.distribution_token.address,
        "supports_history": g.supports_history(),
        "total_staked": g.total_staked(),
        "total_staking_shares": g.total_staking_shares(),
        "total_locked": g.total_locked(),
        "total_unlocked": g.total_unlocked(),
        "unlock_schedule_count": g.unlock_schedule_count(),
        "last_accounting_ts": g.state.last_accounting_ts,
        "params": {
            "start_bonus": p.start_bonus,
            "bonus_period_sec": p.bonus_period_sec,
            "max_unlock_schedules": p.max_unlock_schedules,
            "forfeit_policy": p.forfeit_policy,
        },
    }


@router.get("/accounts/{account}")
def account(account: str, request: Request) -> Json:
    g = _geyser(request)
    totals = g.state.accounts.get(account)
    return {
        "ok": True,
        "account": account,
        "total_staked": g.total_staked_for(account),
        "staking_shares": totals.staking_shares if totals else 0,
        "share_seconds": totals.share_seconds if totals else 0,
        "last_accounting_ts": totals.last_accounting_ts if totals else 0,
        "stakes": [{"shares": r.shares, "timestamp": r.timestamp} for r in g.stakes_for(account)],
    }


@router.get("/schedules")
def schedules(request: Request) -> Json:
    g = _geyser(request)
    out = [g.unlock_schedules(i).to_json() for i in range(g.unlock_schedule_count())]
    return {"ok": True, "count": len(out), "schedules": out}


@router.get("/schedules/{index}")
def schedule(index: int, request: Request):
    g = _geyser(request)
    if index < 0 or index >= g.unlock_schedule_count():
        return JSONResponse(status_code=404, content=error_body("not_found", "unknown_schedule", {"index": index}))
    return {"ok": True, "index": index, "schedule": g.unlock_schedules(index).to_json()}


@router.post("/unstake-query")
def unstake_query(body: UnstakeQueryRequest, request: Request) -> Json:
    g = _geyser(request)
    reward = g.unstake_query(body.account, body.amount)
    return {"ok": True, "account": body.account, "amount": body.amount, "reward": reward}
