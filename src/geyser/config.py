# src/geyser/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from geyser.constants import (
    BURN_ADDRESS,
    DEFAULT_BONUS_PERIOD_SEC,
    DEFAULT_INITIAL_SHARES_PER_TOKEN,
    DEFAULT_MAX_UNLOCK_SCHEDULES,
    DEFAULT_START_BONUS,
    FORFEIT_BURN,
    FORFEIT_POLICIES,
    ONE_HUNDRED_PCT,
)
from geyser.env import load_dotenv_if_present

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class GeyserConfig:
    geyser_id: str
    mode: str  # "dev" | "testnet" | "prod"

    max_unlock_schedules: int
    start_bonus: int  # percent, 0..100
    bonus_period_sec: int
    initial_shares_per_token: int

    forfeit_policy: str  # "burn" | "redistribute"
    forfeit_sink: str

    # SQLite snapshot file; empty disables persistence.
    db_path: str

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_geyser_config(cfg: GeyserConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.geyser_id, str) or not cfg.geyser_id.strip():
        raise ValueError("geyser_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.max_unlock_schedules) <= 0:
        raise ValueError(f"max_unlock_schedules must be > 0; got: {cfg.max_unlock_schedules}")

    if int(cfg.start_bonus) < 0 or int(cfg.start_bonus) > ONE_HUNDRED_PCT:
        raise ValueError(f"start_bonus must be 0..{ONE_HUNDRED_PCT}; got: {cfg.start_bonus}")

    if int(cfg.bonus_period_sec) <= 0:
        raise ValueError(f"bonus_period_sec must be > 0; got: {cfg.bonus_period_sec}")

    if int(cfg.initial_shares_per_token) <= 0:
        raise ValueError(f"initial_shares_per_token must be > 0; got: {cfg.initial_shares_per_token}")

    if cfg.forfeit_policy not in FORFEIT_POLICIES:
        raise ValueError(f"forfeit_policy must be one of {FORFEIT_POLICIES}; got: {cfg.forfeit_policy!r}")

    if cfg.forfeit_policy == FORFEIT_BURN and not str(cfg.forfeit_sink or "").strip():
        raise ValueError("forfeit_sink must be set when forfeit_policy is 'burn'")


def default_geyser_config() -> GeyserConfig:
    return GeyserConfig(
        geyser_id="geyser",
        mode="prod",
        max_unlock_schedules=DEFAULT_MAX_UNLOCK_SCHEDULES,
        start_bonus=DEFAULT_START_BONUS,
        bonus_period_sec=DEFAULT_BONUS_PERIOD_SEC,
        initial_shares_per_token=DEFAULT_INITIAL_SHARES_PER_TOKEN,
        forfeit_policy=FORFEIT_BURN,
        forfeit_sink=BURN_ADDRESS,
        db_path="",
        log_level="INFO",
    )


def geyser_config_from_dict(raw: Json) -> GeyserConfig:
    if not isinstance(raw, dict):
        raise ValueError("geyser config must be a JSON object")

    d = default_geyser_config()
    cfg = GeyserConfig(
        geyser_id=_as_str(raw.get("geyser_id"), d.geyser_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        max_unlock_schedules=_as_int(raw.get("max_unlock_schedules"), d.max_unlock_schedules),
        start_bonus=_as_int(raw.get("start_bonus"), d.start_bonus),
        bonus_period_sec=_as_int(raw.get("bonus_period_sec"), d.bonus_period_sec),
        initial_shares_per_token=_as_int(raw.get("initial_shares_per_token"), d.initial_shares_per_token),
        forfeit_policy=_as_str(raw.get("forfeit_policy"), d.forfeit_policy).strip().lower(),
        forfeit_sink=_as_str(raw.get("forfeit_sink"), d.forfeit_sink),
        db_path=str(raw.get("db_path") or d.db_path),
        log_level=_as_str(raw.get("log_level"), d.log_level),
    )
    validate_geyser_config(cfg)
    return cfg


def read_geyser_config_file(path: str) -> GeyserConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    return geyser_config_from_dict(raw)


def load_geyser_config(*, config_path: Optional[str] = None) -> GeyserConfig:
    load_dotenv_if_present()
    p = config_path or os.environ.get("GEYSER_CONFIG_PATH")
    if p:
        return read_geyser_config_file(p)

    cfg = default_geyser_config()
    validate_geyser_config(cfg)
    return cfg
