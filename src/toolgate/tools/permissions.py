from __future__ import annotations

import asyncio
import inspect
import json
import os
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Union

from platformdirs import user_config_dir
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from ..events.store import EventStore

APP_NAME = "toolgate"

console = Console()


class GrantScope(str, Enum):
    ONCE = "once"
    SESSION = "session"
    ALWAYS = "always"
    DENY = "deny"

    @staticmethod
    def from_choice(choice: Any) -> "GrantScope":
        """Map a prompt answer (A/S/O/N or a scope name) to a scope.

        Anything unrecognised is a refusal.
        """
        if isinstance(choice, GrantScope):
            return choice
        s = str(choice or "").strip().lower()
        letters = {"a": GrantScope.ALWAYS, "s": GrantScope.SESSION, "o": GrantScope.ONCE, "n": GrantScope.DENY}
        if s in letters:
            return letters[s]
        for scope in GrantScope:
            if s == scope.value:
                return scope
        return GrantScope.DENY


class RiskLevel(str, Enum):
    READ_ONLY = "read_only"
    WRITE = "write"


@dataclass(frozen=True)
class PermissionGrant:
    tool_name: str
    scope: GrantScope
    repo_root: str | None = None
    ts: float = field(default_factory=time.time)

    @property
    def allows(self) -> bool:
        return self.scope is not GrantScope.DENY


def normalize_repo_root(repo_root: str | Path) -> str:
    p = os.path.abspath(os.path.expanduser(str(repo_root)))
    return p.rstrip("/\\") or p


class SessionGrants:
    """Grants that live for one agent session, keyed by tool name.

    Each session owns its own instance; nothing here is module-global.
    """

    def __init__(self) -> None:
        self._grants: dict[str, PermissionGrant] = {}

    def get(self, tool_name: str) -> PermissionGrant | None:
        return self._grants.get(tool_name)

    def put(self, grant: PermissionGrant) -> None:
        self._grants[grant.tool_name] = grant

    def clear(self) -> None:
        self._grants.clear()

    def __len__(self) -> int:
        return len(self._grants)


def _grants_path() -> Path:
    return Path(user_config_dir(APP_NAME)) / "grants.json"


class GrantStore:
    """Durable ALWAYS grants, keyed by (repo root, tool name).

    Stored as a flat JSON object ``{"<repo root>:<tool>": {...}}``.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or _grants_path()
        self._lock = threading.Lock()

    @staticmethod
    def key(tool_name: str, repo_root: str | Path) -> str:
        return f"{normalize_repo_root(repo_root)}:{tool_name}"

    def _read(self) -> dict[str, Any]:
        try:
            obj = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            return {}
        return obj if isinstance(obj, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, tool_name: str, repo_root: str | Path) -> PermissionGrant | None:
        with self._lock:
            obj = self._read().get(self.key(tool_name, repo_root))
        if not isinstance(obj, dict):
            return None
        return PermissionGrant(
            tool_name=tool_name,
            scope=GrantScope.ALWAYS,
            repo_root=normalize_repo_root(repo_root),
            ts=float(obj.get("ts", 0.0)),
        )

    def set(self, grant: PermissionGrant) -> None:
        if grant.repo_root is None:
            raise ValueError("ALWAYS grants need a repository root")
        with self._lock:
            data = self._read()
            data[self.key(grant.tool_name, grant.repo_root)] = {
                "tool": grant.tool_name,
                "repo_root": normalize_repo_root(grant.repo_root),
                "ts": grant.ts,
            }
            self._write(data)

    def remove(self, tool_name: str, repo_root: str | Path) -> bool:
        with self._lock:
            data = self._read()
            if data.pop(self.key(tool_name, repo_root), None) is None:
                return False
            self._write(data)
            return True

    def clear(self, repo_root: str | Path | None = None) -> int:
        with self._lock:
            data = self._read()
            if repo_root is None:
                removed = len(data)
                data = {}
            else:
                root = normalize_repo_root(repo_root)
                keep = {k: v for k, v in data.items() if not (isinstance(v, dict) and v.get("repo_root") == root)}
                removed = len(data) - len(keep)
                data = keep
            self._write(data)
            return removed

    def list(self) -> list[PermissionGrant]:
        with self._lock:
            data = self._read()
        out: list[PermissionGrant] = []
        for v in data.values():
            if not isinstance(v, dict) or not isinstance(v.get("tool"), str):
                continue
            out.append(PermissionGrant(
                tool_name=v["tool"],
                scope=GrantScope.ALWAYS,
                repo_root=v.get("repo_root"),
                ts=float(v.get("ts", 0.0)),
            ))
        return out


ApprovalCallout = Callable[[str, dict[str, Any]], Union[GrantScope, str, Awaitable[Union[GrantScope, str]]]]


def _args_preview(args: dict[str, Any], limit: int = 2000) -> str:
    try:
        s = json.dumps(args, ensure_ascii=False, indent=2)
    except (TypeError, ValueError):
        s = str(args)
    if len(s) > limit:
        s = s[:limit] + "\n... (truncated)"
    return s


class ConsoleApproval:
    """Interactive approval prompt on the terminal."""

    def __call__(self, tool_name: str, args: dict[str, Any]) -> GrantScope:
        console.print(Panel.fit(
            f"[bold]Tool:[/bold] {tool_name}\n[dim]{_args_preview(args, 600)}[/dim]\n\n"
            "[green][A][/green] Always for this repo   [cyan][S][/cyan] For this session\n"
            "[blue][O][/blue] Once (this time only)  [red][N][/red] No (cancel)",
            title="[yellow]Permission required[/yellow]",
            border_style="yellow",
        ))
        ans = Prompt.ask("Choice", choices=["A", "S", "O", "N", "a", "s", "o", "n"], default="N", show_choices=False)
        return GrantScope.from_choice(ans)


@dataclass
class AutoApproval:
    """Non-interactive callout for unattended runs."""

    scope: GrantScope = GrantScope.SESSION

    def __call__(self, tool_name: str, args: dict[str, Any]) -> GrantScope:
        return self.scope


def _matches(name: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch(name, p) for p in patterns)


class PermissionEngine:
    """Turns a risk classification plus cached grants into allow/deny.

    Order for non-read-only tools: session grant -> persisted ALWAYS grant for
    the current repo -> approval callout. The whole lookup/prompt/store
    sequence runs under one lock so concurrent calls for the same tool see a
    SESSION/ALWAYS grant written by the first caller instead of prompting
    again.
    """

    def __init__(
        self,
        *,
        repo_root: str | Path,
        session: SessionGrants,
        store: GrantStore,
        callout: ApprovalCallout,
        read_only_tools: Iterable[str] = (),
        read_only_patterns: Iterable[str] = (),
        deny_patterns: Iterable[str] = (),
        deny_policy: str = "reprompt",
        events: EventStore | None = None,
    ) -> None:
        self.repo_root = normalize_repo_root(repo_root)
        self.session = session
        self.store = store
        self.callout = callout
        self.read_only_tools = set(read_only_tools)
        self.read_only_patterns = list(read_only_patterns)
        self.deny_patterns = list(deny_patterns)
        self.deny_policy = deny_policy
        self.events = events
        self._lock = asyncio.Lock()

    def classify(self, tool_name: str, *, read_only: bool = False) -> RiskLevel:
        # read_only: the tool's own spec marks it read-only.
        if read_only or tool_name in self.read_only_tools or _matches(tool_name, self.read_only_patterns):
            return RiskLevel.READ_ONLY
        # Unknown tools are treated as able to write.
        return RiskLevel.WRITE

    def _event(self, event_type: str, data: dict[str, Any]) -> None:
        if self.events is None:
            return
        try:
            self.events.append(event_type, data)
        except OSError:
            pass

    async def _ask(self, tool_name: str, args: dict[str, Any]) -> GrantScope:
        if inspect.iscoroutinefunction(self.callout) or inspect.iscoroutinefunction(
            getattr(self.callout, "__call__", None)
        ):
            answer = await self.callout(tool_name, args)  # type: ignore[misc]
        else:
            # Blocking prompts run off the event loop so progress keeps ticking.
            answer = await asyncio.to_thread(self.callout, tool_name, args)
            if inspect.isawaitable(answer):
                answer = await answer
        return GrantScope.from_choice(answer)

    async def decide(self, tool_name: str, args: dict[str, Any], *, read_only: bool = False) -> bool:
        if self.classify(tool_name, read_only=read_only) is RiskLevel.READ_ONLY:
            return True

        if _matches(tool_name, self.deny_patterns):
            self._event("permission.denied", {"tool": tool_name, "source": "config"})
            return False

        async with self._lock:
            cached = self.session.get(tool_name)
            if cached is not None:
                self._event("permission.granted" if cached.allows else "permission.denied",
                            {"tool": tool_name, "source": "session", "scope": cached.scope.value})
                return cached.allows

            stored = self.store.get(tool_name, self.repo_root)
            if stored is not None:
                self._event("permission.granted", {"tool": tool_name, "source": "store", "scope": stored.scope.value})
                return True

            self._event("permission.prompt", {"tool": tool_name})
            scope = await self._ask(tool_name, args)
            grant = PermissionGrant(tool_name=tool_name, scope=scope, repo_root=self.repo_root)

            if scope is GrantScope.SESSION:
                self.session.put(grant)
            elif scope is GrantScope.ALWAYS:
                self.store.set(grant)
            elif scope is GrantScope.DENY and self.deny_policy == "session":
                self.session.put(grant)

            self._event("permission.granted" if grant.allows else "permission.denied",
                        {"tool": tool_name, "source": "prompt", "scope": scope.value})
            return grant.allows
