from __future__ import annotations

import json
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterator

from platformdirs import user_data_dir

APP_NAME = "toolgate"


def _events_dir() -> Path:
    d = Path(user_data_dir(APP_NAME)) / "events"
    d.mkdir(parents=True, exist_ok=True)
    return d


@dataclass
class Event:
    ts: float
    type: str
    data: dict[str, Any]

    @staticmethod
    def from_line(line: str) -> "Event | None":
        try:
            obj = json.loads(line)
        except ValueError:
            return None
        if not isinstance(obj, dict) or not isinstance(obj.get("type"), str):
            return None
        data = obj.get("data")
        return Event(ts=float(obj.get("ts") or 0.0), type=obj["type"], data=data if isinstance(data, dict) else {})


@dataclass
class EventStore:
    """Append-only JSONL log of tool and permission events for one session.

    Writers on worker threads (sync tools, blocking prompts) share the file,
    so appends are serialized. Unreadable lines are skipped on read.
    """

    session_id: str
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    @staticmethod
    def open(session_id: str, directory: Path | None = None) -> "EventStore":
        d = directory if directory is not None else _events_dir()
        d.mkdir(parents=True, exist_ok=True)
        return EventStore(session_id=session_id, path=d / f"{session_id}.jsonl")

    def append(self, event_type: str, data: dict[str, Any]) -> Event:
        ev = Event(ts=time.time(), type=event_type, data=data)
        # default=str keeps odd argument values (Paths, enums) from failing the write
        line = json.dumps(asdict(ev), ensure_ascii=False, default=str)
        with self._lock, self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
        return ev

    def iter_events(self) -> Iterator[Event]:
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8", errors="replace") as f:
            for line in f:
                if not line.strip():
                    continue
                ev = Event.from_line(line)
                if ev is not None:
                    yield ev

    def tail(self, n: int) -> list[Event]:
        if n <= 0:
            return list(self.iter_events())
        return list(deque(self.iter_events(), maxlen=n))

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.iter_events() if e.type == event_type]
