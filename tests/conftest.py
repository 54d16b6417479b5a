from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from toolgate.events.store import EventStore
from toolgate.tools.base import ToolContext, ToolSpec
from toolgate.tools.dispatcher import ToolDispatcher
from toolgate.tools.permissions import GrantScope, GrantStore, PermissionEngine, SessionGrants
from toolgate.tools.registry import ToolRegistry


def _spec(name: str, permission_key: str = "edit") -> ToolSpec:
    return ToolSpec(name=name, description=f"test tool {name}", parameters={"type": "object"}, permission_key=permission_key)


@dataclass
class EchoTool:
    spec: ToolSpec = field(default_factory=lambda: _spec("echo"))
    calls: int = 0

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> Any:
        self.calls += 1
        return {"echo": args}


@dataclass
class PeekTool:
    spec: ToolSpec = field(default_factory=lambda: _spec("peek", "read"))
    calls: int = 0

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        return {"ok": True}


@dataclass
class BoomTool:
    spec: ToolSpec = field(default_factory=lambda: _spec("boom"))

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        raise RuntimeError("boom")


@dataclass
class SleepyTool:
    """Async tool that never returns on its own."""

    spec: ToolSpec = field(default_factory=lambda: _spec("sleepy"))
    started: bool = False
    ctx: ToolContext | None = None

    async def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.started = True
        self.ctx = ctx
        await asyncio.sleep(float(args.get("sleep", 3600)))
        return {"slept": True}


@dataclass
class PatientTool:
    """Blocking tool that only stops when its context is cancelled."""

    spec: ToolSpec = field(default_factory=lambda: _spec("patient"))
    ctx: ToolContext | None = None

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.ctx = ctx
        stopped = ctx.cancel_event.wait(5)
        return {"stopped": stopped}


class RecordingCallout:
    def __init__(self, *answers: Any) -> None:
        self.answers = list(answers) or [GrantScope.SESSION]
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, tool_name: str, args: dict[str, Any]) -> Any:
        self.calls.append((tool_name, args))
        if len(self.answers) > 1:
            return self.answers.pop(0)
        return self.answers[0]


class SlowAsyncCallout:
    """Async callout that yields long enough for concurrent callers to pile up."""

    def __init__(self, answer: GrantScope, delay: float = 0.05) -> None:
        self.answer = answer
        self.delay = delay
        self.calls = 0

    async def __call__(self, tool_name: str, args: dict[str, Any]) -> GrantScope:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return self.answer


@pytest.fixture
def events(tmp_path: Path) -> EventStore:
    return EventStore.open("test-session", directory=tmp_path / "events")


@pytest.fixture
def grant_store(tmp_path: Path) -> GrantStore:
    return GrantStore(tmp_path / "config" / "grants.json")


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    d = tmp_path / "repo"
    d.mkdir()
    return d


@pytest.fixture
def make_engine(repo: Path, grant_store: GrantStore, events: EventStore):
    def _make(callout: Any = None, **kw: Any) -> PermissionEngine:
        kw.setdefault("read_only_tools", {"peek", "read"})
        return PermissionEngine(
            repo_root=kw.pop("repo_root", repo),
            session=kw.pop("session", SessionGrants()),
            store=kw.pop("store", grant_store),
            callout=callout if callout is not None else RecordingCallout(),
            events=events,
            **kw,
        )

    return _make


@pytest.fixture
def make_dispatcher(repo: Path, events: EventStore, make_engine):
    def _make(*tools: Any, callout: Any = None, **kw: Any) -> ToolDispatcher:
        registry = ToolRegistry()
        for t in tools:
            registry.register(t)
        engine = make_engine(callout, read_only_tools=registry.read_only_names())
        kw.setdefault("progress_interval_s", 0.02)
        return ToolDispatcher(registry, engine, cwd=str(repo), session_id="test-session", events=events, **kw)

    return _make
