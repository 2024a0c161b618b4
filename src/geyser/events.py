# src/geyser/events.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from geyser.structured_logging import log_event

Json = Dict[str, Any]

STAKED = "Staked"
UNSTAKED = "Unstaked"
TOKENS_CLAIMED = "TokensClaimed"
TOKENS_LOCKED = "TokensLocked"
TOKENS_UNLOCKED = "TokensUnlocked"

_log = logging.getLogger("geyser.events")


@dataclass(frozen=True)
class GeyserEvent:
    name: str
    ts: int
    fields: Json = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def to_json(self) -> Json:
        return {"name": self.name, "ts": self.ts, **self.fields}


Listener = Callable[[GeyserEvent], None]


class EventLog:
    """In-process event log.

    Events of a call are published together, and only once the call has
    settled; listeners never observe events of an aborted call. A failing
    listener is logged and skipped.
    """

    def __init__(self) -> None:
        self.records: List[GeyserEvent] = []
        self._listeners: List[Listener] = []

    def __len__(self) -> int:
        return len(self.records)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def publish(self, events: Iterable[GeyserEvent]) -> None:
        for ev in events:
            self.records.append(ev)
            log_event(_log, "geyser_event", name=ev.name, ts=ev.ts, **ev.fields)
            for cb in list(self._listeners):
                try:
                    cb(ev)
                except Exception as e:
                    # The call is settled and persisted by now.
                    log_event(
                        _log,
                        "geyser_listener_failed",
                        level=logging.WARNING,
                        name=ev.name,
                        listener=getattr(cb, "__qualname__", repr(cb)),
                        error=str(e),
                    )

    def named(self, name: str) -> List[GeyserEvent]:
        return [e for e in self.records if e.name == name]

    def last(self, name: str) -> Optional[GeyserEvent]:
        for ev in reversed(self.records):
            if ev.name == name:
                return ev
        return None

    def since(self, mark: int) -> List[GeyserEvent]:
        return self.records[int(mark):]
