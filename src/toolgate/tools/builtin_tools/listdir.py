from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..base import ToolSpec, ToolContext, error_result
from ...util.fs import resolve_path, rel_display, FsError

@dataclass
class ListDirTool:
    spec: ToolSpec = ToolSpec(
        name="list",
        description="List files/directories under a path (relative to cwd).",
        permission_key="read",
        parameters={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory path relative to cwd. Default '.'"},
                "max_entries": {"type": "integer", "description": "Max entries to return", "default": 200},
                "recursive": {"type": "boolean", "description": "If true, list recursively", "default": False},
            },
            "required": [],
        },
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        cwd = Path(ctx.cwd).expanduser().resolve()
        path = args.get("path", ".")
        max_entries = int(args.get("max_entries", 200))
        try:
            p = resolve_path(cwd, path)
        except FsError as e:
            return error_result(str(e))
        if not p.exists():
            return error_result(f"Path not found: {path}")
        if not p.is_dir():
            return error_result(f"Not a directory: {path}")

        entries: list[str] = []
        if bool(args.get("recursive", False)):
            for root, dirs, files in os.walk(p):
                dirs.sort()
                rootp = Path(root)
                for name in [*dirs, *sorted(files)]:
                    entries.append(rel_display(cwd, rootp / name))
                if len(entries) >= max_entries or ctx.cancelled:
                    break
        else:
            for child in sorted(p.iterdir(), key=lambda x: (not x.is_dir(), x.name.lower())):
                entries.append(rel_display(cwd, child) + ("/" if child.is_dir() else ""))

        return {"path": path, "entries": entries[:max_entries], "truncated": len(entries) > max_entries}
