from __future__ import annotations

import asyncio
import copy
import inspect
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from ..events.store import EventStore


class ToolStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {ToolStatus.COMPLETED, ToolStatus.FAILED, ToolStatus.TIMED_OUT, ToolStatus.CANCELLED}


class StopReason(str, Enum):
    """Which cancellation source ended an invocation early."""

    NONE = "none"
    DEADLINE = "deadline"
    EXTERNAL = "external"


@dataclass
class ExecutionProgress:
    tool_name: str
    args: dict[str, Any] = field(default_factory=dict)
    status: ToolStatus = ToolStatus.PENDING
    start_time: float = field(default_factory=time.time)
    timeout_s: float | None = None
    message: str | None = None
    result: Any = None
    timed_out: bool = False
    cancelled: bool = False
    stop_reason: StopReason = StopReason.NONE
    _t0: float = field(default_factory=time.perf_counter, repr=False)
    _t_end: float | None = field(default=None, repr=False)

    @property
    def elapsed_s(self) -> float:
        end = self._t_end if self._t_end is not None else time.perf_counter()
        return end - self._t0

    @property
    def elapsed_ms(self) -> int:
        return int(self.elapsed_s * 1000)

    @property
    def elapsed_formatted(self) -> str:
        s = self.elapsed_s
        if s >= 60:
            return f"{int(s // 60)}m {int(s % 60)}s"
        return f"{s:.1f}s"

    def start(self, message: str | None = None) -> None:
        if self.status is not ToolStatus.PENDING:
            raise ValueError(f"Cannot start from status {self.status.value}")
        self.status = ToolStatus.RUNNING
        self.message = message

    def finish(self, status: ToolStatus, result: Any = None, message: str | None = None) -> None:
        """Move to a terminal state. Terminal states are never re-entered."""
        if not status.terminal:
            raise ValueError(f"Not a terminal status: {status.value}")
        if self.status.terminal:
            raise ValueError(f"Invocation already finished as {self.status.value}")
        self.status = status
        self.result = result
        if message is not None:
            self.message = message
        self.timed_out = status is ToolStatus.TIMED_OUT
        self.cancelled = status is ToolStatus.CANCELLED
        self._t_end = time.perf_counter()

    def snapshot(self) -> "ExecutionProgress":
        return copy.copy(self)


ProgressObserver = Callable[[ExecutionProgress], Union[None, Awaitable[None]]]


async def publish(observer: Optional[ProgressObserver], progress: ExecutionProgress) -> None:
    """Hand a snapshot to the observer. Observer failures never reach the tool."""
    if observer is None:
        return
    try:
        r = observer(progress.snapshot())
        if inspect.isawaitable(r):
            await r
    except Exception:
        pass


class ProgressReporter:
    """Republishes an invocation's progress on a fixed cadence until stopped."""

    def __init__(
        self,
        progress: ExecutionProgress,
        observer: ProgressObserver,
        *,
        interval_s: float = 0.5,
        events: EventStore | None = None,
    ) -> None:
        self.progress = progress
        self.observer = observer
        self.interval_s = interval_s
        self.events = events
        self.ticks = 0
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("reporter already started")
        self._task = asyncio.create_task(self._run(), name=f"progress:{self.progress.tool_name}")

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_s)
                break
            except asyncio.TimeoutError:
                pass
            p = self.progress
            if p.status.terminal:
                break
            p.message = f"Running... {p.elapsed_formatted}"
            self.ticks += 1
            if self.events is not None:
                try:
                    self.events.append(
                        "tool.progress",
                        {"tool": p.tool_name, "status": p.status.value, "elapsed_ms": p.elapsed_ms, "tick": self.ticks},
                    )
                except OSError:
                    pass
            await publish(self.observer, p)

    async def stop(self) -> None:
        """Signal the loop and wait for it. Safe to call more than once."""
        self._stop.set()
        task = self._task
        if task is None or task.done():
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # We are being cancelled ourselves: make sure the loop is gone first.
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise
