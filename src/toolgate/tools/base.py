from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]   # JSONSchema
    permission_key: str          # "read" | "edit" | "bash"

    @property
    def read_only(self) -> bool:
        return self.permission_key == "read"

class Tool(Protocol):
    spec: ToolSpec
    # May also be declared ``async def``; the dispatcher awaits coroutines and
    # runs plain functions on a worker thread.
    def execute(self, ctx: "ToolContext", args: dict[str, Any]) -> dict[str, Any]: ...

@dataclass
class ToolContext:
    cwd: str
    session_id: str | None = None
    # Set when the invocation's deadline or the caller's cancellation fires.
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

def error_result(message: str, /, **extra: Any) -> dict[str, Any]:
    out: dict[str, Any] = {"error": message}
    out.update(extra)
    return out
