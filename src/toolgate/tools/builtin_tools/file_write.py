from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..base import ToolSpec, ToolContext, error_result
from ...util.fs import resolve_path, FsError

@dataclass
class WriteFileTool:
    spec: ToolSpec = ToolSpec(
        name="write",
        description="Create or overwrite a file with given content.",
        permission_key="edit",
        parameters={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to cwd."},
                "content": {"type": "string", "description": "Full file content."},
                "mkdirs": {"type": "boolean", "default": True, "description": "Create parent directories if needed."},
            },
            "required": ["path", "content"],
        },
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        path = args.get("path")
        content = args.get("content")
        if not isinstance(path, str) or not path or not isinstance(content, str):
            return error_result("path and content are required")
        try:
            p = resolve_path(Path(ctx.cwd), path)
        except FsError as e:
            return error_result(str(e))
        if bool(args.get("mkdirs", True)):
            p.parent.mkdir(parents=True, exist_ok=True)
        existed = p.exists()
        p.write_bytes(content.encode("utf-8"))
        return {"path": path, "chars": len(content), "created": not existed}
