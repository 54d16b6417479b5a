from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..base import ToolSpec, ToolContext, error_result
from ...util.fs import resolve_path, read_text, FsError

@dataclass
class ReadFileTool:
    spec: ToolSpec = ToolSpec(
        name="read",
        description="Read a text file. Optionally limit to a line range or prefix line numbers.",
        permission_key="read",
        parameters={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to cwd."},
                "start_line": {"type": "integer", "description": "1-based start line (inclusive)."},
                "end_line": {"type": "integer", "description": "1-based end line (inclusive)."},
                "line_numbers": {"type": "boolean", "default": False},
                "max_chars": {"type": "integer", "default": 40000},
            },
            "required": ["path"],
        },
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        cwd = Path(ctx.cwd)
        path = args.get("path")
        if not isinstance(path, str) or not path:
            return error_result("missing_path")
        try:
            p = resolve_path(cwd, path)
        except FsError as e:
            return error_result(str(e))
        if not p.exists() or not p.is_file():
            return error_result(f"File not found: {path}")

        lines = read_text(p).splitlines()
        total = len(lines)
        s = int(args.get("start_line") or 1)
        e = int(args.get("end_line") or total)
        s = max(1, s)
        e = min(total, e)
        excerpt = lines[s-1:e]
        if args.get("line_numbers"):
            excerpt = [f"{i}: {line}" for i, line in enumerate(excerpt, start=s)]

        out = "\n".join(excerpt)
        max_chars = int(args.get("max_chars", 40000))
        truncated = len(out) > max_chars
        if truncated:
            out = out[:max_chars] + "\n... (truncated)"
        return {"path": path, "content": out, "total_lines": total, "truncated": truncated}
