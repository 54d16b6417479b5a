from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import Any, AsyncIterator, Optional

from ..events.store import EventStore
from .base import Tool, ToolContext, error_result
from .permissions import PermissionEngine
from .progress import (
    ExecutionProgress,
    ProgressObserver,
    ProgressReporter,
    StopReason,
    ToolStatus,
    publish,
)
from .registry import ToolRegistry

PERMISSION_DENIED = "Permission denied by user"


class DeadlineExceeded(Exception):
    """Raised internally when the per-invocation deadline fires first."""


def _normalize_result(result: Any) -> dict[str, Any]:
    if isinstance(result, dict):
        return result
    if result is None:
        return {}
    return {"output": result if isinstance(result, str) else repr(result)}


def is_failure(result: dict[str, Any]) -> bool:
    """A payload failed if it carries an error or a timed-out indicator."""
    return bool(result.get("error")) or result.get("timed_out") is True


def _preview(result: dict[str, Any], limit: int = 4000) -> str:
    s = str(result)
    return s[:limit]


class ToolDispatcher:
    """Runs one tool call: permission check, deadline, progress, cancellation.

    ``execute`` never raises because of something a tool did. The only
    exception that escapes is ``asyncio.CancelledError`` when the caller
    cancels the awaiting task.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        permissions: PermissionEngine,
        *,
        cwd: str,
        session_id: str | None = None,
        default_timeout_s: float | None = 3600.0,
        progress_interval_s: float = 0.5,
        events: EventStore | None = None,
    ) -> None:
        self.registry = registry
        self.permissions = permissions
        self.cwd = cwd
        self.session_id = session_id
        self.default_timeout_s = default_timeout_s
        self.progress_interval_s = progress_interval_s
        self.events = events

    def _event(self, event_type: str, data: dict[str, Any]) -> None:
        if self.events is None:
            return
        try:
            self.events.append(event_type, data)
        except OSError:
            pass

    @contextlib.asynccontextmanager
    async def _reporting(
        self, progress: ExecutionProgress, observer: Optional[ProgressObserver]
    ) -> AsyncIterator[Optional[ProgressReporter]]:
        reporter = None
        if observer is not None:
            reporter = ProgressReporter(progress, observer, interval_s=self.progress_interval_s, events=self.events)
            reporter.start()
        try:
            yield reporter
        finally:
            if reporter is not None:
                await reporter.stop()

    async def execute(
        self,
        name: str,
        args: dict[str, Any] | None = None,
        *,
        timeout_s: float | None = None,
        on_progress: Optional[ProgressObserver] = None,
    ) -> dict[str, Any]:
        args = args if args is not None else {}
        effective = timeout_s if timeout_s is not None else self.default_timeout_s
        progress = ExecutionProgress(tool_name=name, args=args, timeout_s=effective)

        self._event("tool.start", {"tool": name, "args": args, "timeout_s": effective, "session_id": self.session_id})
        progress.start("Starting...")
        await publish(on_progress, progress)

        async with self._reporting(progress, on_progress) as reporter:
            try:
                try:
                    status, result = await self._dispatch(name, args, effective, progress)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    status, result = ToolStatus.FAILED, error_result(str(e) or type(e).__name__)
                    self._event("tool.error", {"tool": name, "error": result["error"]})
                if reporter is not None:
                    await reporter.stop()
            except asyncio.CancelledError:
                # The reporter stops publishing once the status is terminal;
                # the context manager still joins it.
                progress.stop_reason = StopReason.EXTERNAL
                progress.finish(ToolStatus.CANCELLED, message="Cancelled by caller")
                self._event("tool.cancelled", {"tool": name, "elapsed_ms": progress.elapsed_ms})
                await publish(on_progress, progress)
                raise

            progress.finish(status, result)
            self._event(
                "tool.end",
                {
                    "tool": name,
                    "status": status.value,
                    "elapsed_ms": progress.elapsed_ms,
                    "stop_reason": progress.stop_reason.value,
                    "result_preview": _preview(result),
                },
            )
            await publish(on_progress, progress)
        return result

    async def _dispatch(
        self, name: str, args: dict[str, Any], timeout_s: float | None, progress: ExecutionProgress
    ) -> tuple[ToolStatus, dict[str, Any]]:
        tool = self.registry.get_optional(name)
        if tool is None:
            return ToolStatus.FAILED, error_result(f"Unknown tool: {name}")

        if not await self.permissions.decide(name, args, read_only=tool.spec.read_only):
            self._event("tool.denied", {"tool": name})
            return ToolStatus.FAILED, error_result(PERMISSION_DENIED)

        ctx = ToolContext(cwd=self.cwd, session_id=self.session_id)
        try:
            result = await self._run_with_deadline(tool, ctx, args, timeout_s, progress)
        except DeadlineExceeded:
            self._event("tool.timeout", {"tool": name, "elapsed_ms": progress.elapsed_ms, "timeout_s": timeout_s})
            return ToolStatus.TIMED_OUT, {"error": "timeout", "timed_out": True, "elapsed_ms": progress.elapsed_ms}
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._event("tool.error", {"tool": name, "error": str(e)[:2000]})
            return ToolStatus.FAILED, error_result(str(e) or type(e).__name__)

        result = _normalize_result(result)
        return (ToolStatus.FAILED if is_failure(result) else ToolStatus.COMPLETED), result

    async def _invoke(self, tool: Tool, ctx: ToolContext, args: dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(tool.execute):
            return await tool.execute(ctx, args)
        # Sync tools run on a worker thread so the reporter keeps ticking.
        r = await asyncio.to_thread(tool.execute, ctx, args)
        if inspect.isawaitable(r):
            r = await r
        return r

    async def _run_with_deadline(
        self,
        tool: Tool,
        ctx: ToolContext,
        args: dict[str, Any],
        timeout_s: float | None,
        progress: ExecutionProgress,
    ) -> Any:
        """Race the tool against two cancellation sources.

        Either source sets ``ctx.cancel_event`` (the combined signal) and
        records itself in ``progress.stop_reason``. External cancellation
        wins when both fire.
        """
        task = asyncio.ensure_future(self._invoke(tool, ctx, args))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_s)
        except asyncio.CancelledError:
            progress.stop_reason = StopReason.EXTERNAL
            ctx.cancel_event.set()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise

        if task in done:
            if task.cancelled():
                return error_result("Tool cancelled itself")
            return task.result()

        progress.stop_reason = StopReason.DEADLINE
        ctx.cancel_event.set()
        task.cancel()
        try:
            await asyncio.gather(task, return_exceptions=True)
        except asyncio.CancelledError:
            progress.stop_reason = StopReason.EXTERNAL
            raise
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            # Cancellation requested in the same tick as the deadline.
            progress.stop_reason = StopReason.EXTERNAL
            raise asyncio.CancelledError()
        raise DeadlineExceeded()
