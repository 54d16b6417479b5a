from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any
import re

from ..base import ToolSpec, ToolContext, error_result
from ...util.fs import resolve_path, read_text, rel_display, FsError

@dataclass
class GrepTool:
    spec: ToolSpec = ToolSpec(
        name="grep",
        description="Search for a pattern in files. Returns matching lines with line numbers.",
        permission_key="read",
        parameters={
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": "Regex (default) or literal string if regex=false."},
                "path": {"type": "string", "description": "File or directory to search (relative to cwd). Default '.'"},
                "regex": {"type": "boolean", "default": True},
                "include": {"type": "string", "description": "Optional glob filter like '*.py'."},
                "max_matches": {"type": "integer", "default": 200},
            },
            "required": ["pattern"],
        },
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        cwd = Path(ctx.cwd).expanduser().resolve()
        pattern = args.get("pattern")
        if not isinstance(pattern, str) or not pattern:
            return error_result("missing_pattern")
        include = args.get("include")
        max_matches = int(args.get("max_matches", 200))

        try:
            target = resolve_path(cwd, args.get("path", "."))
        except FsError as e:
            return error_result(str(e))
        if not target.exists():
            return error_result(f"Path not found: {args.get('path', '.')}")

        rx = None
        if bool(args.get("regex", True)):
            try:
                rx = re.compile(pattern)
            except re.error as e:
                return error_result(f"Invalid regex: {e}")

        if target.is_file():
            candidates = [target]
        else:
            candidates = sorted(p for p in target.rglob("*") if p.is_file() and (not include or p.match(include)))

        matches: list[str] = []
        for f in candidates:
            # Cooperative stop when the dispatcher's deadline or caller cancels.
            if ctx.cancelled:
                break
            try:
                text = read_text(f)
            except OSError:
                continue
            for i, line in enumerate(text.splitlines(), start=1):
                hit = (rx.search(line) is not None) if rx else (pattern in line)
                if hit:
                    matches.append(f"{rel_display(cwd, f)}:{i}: {line}")
                    if len(matches) >= max_matches:
                        return {"matches": matches, "truncated": True}
        return {"matches": matches, "truncated": False}
