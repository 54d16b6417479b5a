from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..base import ToolSpec, ToolContext, error_result
from ...patch import PatchApplier, parse_patch

SUGGESTION = (
    "The patch context doesn't match the file. Read the file first with "
    "read(path, line_numbers=true) to see actual line numbers and content."
)

@dataclass
class PatchTool:
    spec: ToolSpec = ToolSpec(
        name="apply_patch",
        description=(
            "Apply a unified diff patch to the working directory. Hunks whose line numbers "
            "have drifted are relocated by their context lines."
        ),
        permission_key="edit",
        parameters={
            "type": "object",
            "properties": {
                "patch": {"type": "string", "description": "Unified diff text with ---/+++ headers."},
                "root": {"type": "string", "description": "Directory patch paths are relative to. Default: cwd."},
                "atomic": {"type": "boolean", "default": False, "description": "Write nothing unless every file applies."},
            },
            "required": ["patch"],
        },
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        patch = args.get("patch")
        if not isinstance(patch, str):
            return error_result("missing_patch", applied=False, message="patch is required")
        if "---" not in patch or "+++" not in patch:
            return error_result(
                "invalid_patch_format",
                applied=False,
                message="Patch must be in unified diff format with --- and +++ headers",
            )

        root = args.get("root")
        root_dir = Path(root) if isinstance(root, str) and root else Path(ctx.cwd)
        if not root_dir.is_absolute():
            root_dir = Path(ctx.cwd) / root_dir

        report = PatchApplier(root_dir, atomic=bool(args.get("atomic", False))).apply(patch)
        if report.applied:
            return {"applied": True, "message": "Patch applied successfully", "files": report.written}

        return error_result(
            "patch_rejected",
            applied=False,
            rejects=report.reject_log,
            written=report.written,
            failed=report.failed,
            diagnostics=_diagnostics(patch, root_dir),
            suggestion=SUGGESTION,
        )


def _diagnostics(patch: str, root_dir: Path) -> list[str]:
    out: list[str] = []
    files, _ = parse_patch(patch)
    for fp in files:
        target = root_dir / fp.display_path
        if not fp.is_creation and not target.exists():
            out.append(f"Target file not found: {target}")
            continue
        if target.is_file():
            try:
                n = len(target.read_bytes().decode("utf-8", errors="replace").splitlines())
            except OSError:
                continue
            out.append(f"{fp.display_path}: file has {n} lines")
        out.extend(f"{fp.display_path}: hunk {h.header}" for h in fp.hunks)
    return out
