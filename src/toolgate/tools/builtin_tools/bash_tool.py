from __future__ import annotations
from dataclasses import dataclass
from typing import Any
import os
import shutil
import subprocess

from ..base import ToolSpec, ToolContext, error_result
from ...util.subprocess import run_cmd

@dataclass
class BashTool:
    spec: ToolSpec = ToolSpec(
        name="bash",
        description="Run a shell command in the working directory. Returns stdout/stderr and exit code.",
        permission_key="bash",
        parameters={
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Shell command to run."},
                "timeout": {"type": "integer", "default": 120, "description": "Timeout seconds."},
            },
            "required": ["command"],
        },
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        cmd = (args.get("command") or "").strip()
        timeout = int(args.get("timeout", 120))
        if not cmd:
            return error_result("Empty command.")

        # Use a real shell so built-ins like `cd`, pipes, &&, env expansion work.
        if os.name == "nt":
            parts = ["cmd.exe", "/c", cmd]
        else:
            shell = "bash" if shutil.which("bash") else "sh"
            parts = [shell, "-lc", cmd]

        try:
            res = run_cmd(parts, cwd=ctx.cwd, timeout=timeout, cancel_event=ctx.cancel_event)
        except subprocess.TimeoutExpired:
            return error_result(f"Command timed out after {timeout}s", exit_code=None)

        out: dict[str, Any] = {"stdout": res.stdout, "stderr": res.stderr, "exit_code": res.returncode}
        if res.cancelled:
            out["error"] = "cancelled"
        elif res.returncode != 0:
            out["error"] = f"exit code {res.returncode}"
        return out
