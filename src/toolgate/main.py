from __future__ import annotations

import asyncio
import contextlib
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .app_context import AppContext
from .events.store import EventStore
from .tools.permissions import GrantStore
from .tools.progress import ExecutionProgress, ToolStatus
from .config.loader import load_core_config

app = typer.Typer(add_completion=False, help="toolgate: policy-checked tool execution and unified-diff patching.")
console = Console()

_STATUS_STYLE = {
    ToolStatus.COMPLETED: "green",
    ToolStatus.FAILED: "red",
    ToolStatus.TIMED_OUT: "yellow",
    ToolStatus.CANCELLED: "magenta",
}


def _resolve_cwd(cwd: Path | None) -> Path:
    cwd = Path(str(cwd or Path.cwd())).expanduser()
    cwd = cwd.resolve() if cwd.is_absolute() else (Path.cwd() / cwd).resolve()
    if not cwd.is_dir():
        raise typer.BadParameter(f"--cwd must be an existing directory: {cwd}")
    return cwd


def _parse_args(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"--args is not valid JSON: {e}")
    if not isinstance(obj, dict):
        raise typer.BadParameter("--args must be a JSON object")
    return obj


def _run_tool(ctx: AppContext, name: str, args: dict[str, Any], timeout: float | None) -> tuple[dict[str, Any], ExecutionProgress | None]:
    final: dict[str, ExecutionProgress] = {}

    # A live spinner would fight with the approval prompt for the terminal.
    spinner = console.status(f"[bold]{name}[/bold] starting...") if ctx.auto_approve else contextlib.nullcontext()
    with spinner as status:
        def _on_progress(p: ExecutionProgress) -> None:
            final["p"] = p
            if status is not None:
                status.update(f"[bold]{name}[/bold] {p.status.value} {p.elapsed_formatted}")

        try:
            result = asyncio.run(ctx.dispatcher.execute(name, args, timeout_s=timeout, on_progress=_on_progress))
        except KeyboardInterrupt:
            console.print(f"[magenta]Cancelled[/magenta] {name}")
            raise typer.Exit(code=130)
    return result, final.get("p")


def _show_result(name: str, result: dict[str, Any], progress: ExecutionProgress | None) -> None:
    status = progress.status if progress else ToolStatus.COMPLETED
    elapsed = progress.elapsed_formatted if progress else "-"
    console.print(
        Panel.fit(
            json.dumps(result, ensure_ascii=False, indent=2, default=str)[:8000],
            title=f"{name} ({status.value}, {elapsed})",
            border_style=_STATUS_STYLE.get(status, "white"),
        )
    )


@app.command("exec")
def exec_tool(
    name: str = typer.Argument(..., help="Tool name (see `toolgate tools`)."),
    args: str = typer.Option(None, "--args", "-a", help="Tool arguments as a JSON object."),
    cwd: Path = typer.Option(None, "--cwd", help="Workspace root. Defaults to current directory."),
    timeout: float = typer.Option(None, "--timeout", help="Deadline in seconds (default from config)."),
    yes: bool = typer.Option(False, "--yes", help="Approve prompts for this session without asking."),
    session: str = typer.Option(None, "--session", help="Session id for the event log."),
    config: Path = typer.Option(None, "--config", help="Explicit config file (JSON or YAML)."),
):
    """Run one tool through the dispatcher."""
    ctx = AppContext.from_env(_resolve_cwd(cwd), session_id=session, auto_approve=yes, config_path=config)
    result, progress = _run_tool(ctx, name, _parse_args(args), timeout)
    _show_result(name, result, progress)
    if progress is not None and progress.status is not ToolStatus.COMPLETED:
        raise typer.Exit(code=1)


@app.command()
def apply(
    patch_file: Path = typer.Argument(..., help="Unified diff file ('-' reads stdin)."),
    cwd: Path = typer.Option(None, "--cwd", help="Workspace root. Defaults to current directory."),
    atomic: bool = typer.Option(False, "--atomic", help="Write nothing unless every file applies."),
    yes: bool = typer.Option(False, "--yes", help="Approve prompts for this session without asking."),
    session: str = typer.Option(None, "--session", help="Session id for the event log."),
    config: Path = typer.Option(None, "--config", help="Explicit config file (JSON or YAML)."),
):
    """Apply a unified diff via the apply_patch tool."""
    if str(patch_file) == "-":
        text = typer.get_text_stream("stdin").read()
    else:
        text = patch_file.expanduser().read_text(encoding="utf-8")
    ctx = AppContext.from_env(_resolve_cwd(cwd), session_id=session, auto_approve=yes, config_path=config)
    result, progress = _run_tool(ctx, "apply_patch", {"patch": text, "atomic": atomic}, None)
    if result.get("applied"):
        console.print(f"[green]Applied[/green] {', '.join(result.get('files') or [])}")
        return
    if result.get("rejects"):
        console.print(Panel(result["rejects"].rstrip(), title="Rejects", border_style="red"))
    else:
        _show_result("apply_patch", result, progress)
    raise typer.Exit(code=1)


@app.command()
def tools(
    cwd: Path = typer.Option(None, "--cwd", help="Workspace root. Defaults to current directory."),
    config: Path = typer.Option(None, "--config", help="Explicit config file (JSON or YAML)."),
):
    """List registered tools and how the permission engine classifies them."""
    ctx = AppContext.from_env(_resolve_cwd(cwd), config_path=config)
    table = Table("tool", "risk", "description")
    for spec in sorted(ctx.tools.list_specs(), key=lambda s: s.name):
        table.add_row(spec.name, ctx.permissions.classify(spec.name, read_only=spec.read_only).value, spec.description)
    console.print(table)


@app.command()
def grants(
    cwd: Path = typer.Option(None, "--cwd", help="Only show/clear grants for this workspace."),
    clear: bool = typer.Option(False, "--clear", help="Remove the persisted grants shown."),
    config: Path = typer.Option(None, "--config", help="Explicit config file (JSON or YAML)."),
):
    """Show or clear persisted 'always' grants."""
    root = _resolve_cwd(cwd) if cwd else None
    cfg = load_core_config(cwd=root or Path.cwd(), explicit_path=config)
    store = GrantStore(cfg.grants_path)
    if clear:
        n = store.clear(root)
        console.print(f"Removed {n} grant(s) from {store.path}")
        return
    items = store.list()
    if root is not None:
        items = [g for g in items if g.repo_root == str(root)]
    if not items:
        console.print("No persisted grants.")
        raise typer.Exit(code=0)
    table = Table("tool", "repo", "granted")
    for g in sorted(items, key=lambda g: (g.repo_root or "", g.tool_name)):
        table.add_row(g.tool_name, g.repo_root or "", datetime.fromtimestamp(g.ts).strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)


@app.command()
def events(
    session: str = typer.Option(..., "--session", help="Session id to inspect events."),
    tail: int = typer.Option(200, "--tail", help="Show last N events."),
):
    """Show recent structured events (tool runs, permission decisions) for a session."""
    es = EventStore.open(session)
    evs = es.tail(tail)
    console.print(Panel.fit(f"session: {session}\nfile: {es.path}\nevents: {len(evs)}", title="Events"))
    for e in evs:
        ts = datetime.fromtimestamp(e.ts).strftime("%Y-%m-%d %H:%M:%S")
        console.print(Panel.fit(json.dumps(e.data, ensure_ascii=False, indent=2)[:4000], title=f"{ts}  {e.type}"))


if __name__ == "__main__":
    app()
