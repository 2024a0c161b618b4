# src/geyser/store.py
from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from geyser.ledger.state import STATE_VERSION, GeyserState
from geyser.structured_logging import log_event

Json = Dict[str, Any]

_log = logging.getLogger("geyser.store")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # No default=str: a non-JSON type leaking into the snapshot must fail loudly.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


class SqliteGeyserStore:
    """Durable snapshot of one GeyserState in a single SQLite file.

    One row, rewritten after every successful call. The geyser is
    single-writer, so there is no merge logic: the last snapshot wins.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)
        if not self.path.strip() or self.path == ":memory:":
            raise ValueError("SqliteGeyserStore needs a file path; :memory: opens a new database per connection")
        self.init_schema()

    def _sqlite_synchronous_pragma(self) -> str:
        mode = (os.environ.get("GEYSER_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("GEYSER_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        timeout_s = float(_env_int("GEYSER_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(self.path, timeout=timeout_s, isolation_level=None)
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA journal_mode=WAL;")
        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute(f"PRAGMA busy_timeout={int(timeout_s * 1000)};")
        return con

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            con.execute("BEGIN IMMEDIATE;")
            try:
                yield con
            except Exception:
                con.execute("ROLLBACK;")
                raise
            con.execute("COMMIT;")
        finally:
            con.close()

    @contextmanager
    def read_tx(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS geyser_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  state_version INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute(
                    "INSERT INTO meta(key, value) VALUES('schema_version', ?);",
                    (str(self.SCHEMA_VERSION),),
                )
            elif int(row["value"]) != self.SCHEMA_VERSION:
                raise RuntimeError(
                    f"geyser store schema_version {row['value']} does not match {self.SCHEMA_VERSION}: {self.path}"
                )

    def exists(self) -> bool:
        with self.read_tx() as con:
            row = con.execute("SELECT 1 FROM geyser_state WHERE id=1;").fetchone()
        return row is not None

    def read(self) -> GeyserState:
        raw = self.read_json()
        if raw is None:
            raise FileNotFoundError(f"no geyser snapshot in {self.path}")
        return GeyserState.from_json(raw)

    def read_json(self) -> Optional[Json]:
        with self.read_tx() as con:
            row = con.execute("SELECT state_json FROM geyser_state WHERE id=1;").fetchone()
        if row is None:
            return None
        return json.loads(row["state_json"])

    def write(self, state: GeyserState) -> None:
        payload = _canon_json(state.to_json())
        with self.write_tx() as con:
            con.execute(
                """
                INSERT INTO geyser_state(id, state_version, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  state_version=excluded.state_version,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (STATE_VERSION, payload, _now_ms()),
            )
        log_event(_log, "geyser_snapshot_written", level=logging.DEBUG, path=self.path, size=len(payload))
