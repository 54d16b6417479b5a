from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import pytest

from toolgate.tools.base import ToolContext
from toolgate.tools.builtin import register_builtin_tools
from toolgate.tools.builtin_tools.bash_tool import BashTool
from toolgate.tools.builtin_tools.file_read import ReadFileTool
from toolgate.tools.builtin_tools.file_write import WriteFileTool
from toolgate.tools.builtin_tools.grep_tool import GrepTool
from toolgate.tools.builtin_tools.listdir import ListDirTool
from toolgate.tools.dispatcher import ToolDispatcher
from toolgate.tools.permissions import GrantScope
from toolgate.tools.progress import ToolStatus
from toolgate.tools.registry import ToolRegistry

from conftest import RecordingCallout

PATCH = """\
--- a/notes.txt
+++ b/notes.txt
@@ -1,3 +1,3 @@
 one
-two
+TWO
 three
"""

needs_shell = pytest.mark.skipif(shutil.which("sh") is None, reason="needs a POSIX shell")


@pytest.fixture
def workspace(repo: Path) -> Path:
    (repo / "notes.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")
    (repo / "pkg").mkdir()
    (repo / "pkg" / "mod.py").write_text("def two():\n    return 2\n", encoding="utf-8")
    return repo


@pytest.fixture
def ctx(workspace: Path) -> ToolContext:
    return ToolContext(cwd=str(workspace))


@pytest.fixture
def dispatcher(workspace: Path, make_engine, events):
    def _make(callout=None, **kw) -> ToolDispatcher:
        registry = ToolRegistry()
        register_builtin_tools(registry)
        engine = make_engine(callout, read_only_tools=registry.read_only_names())
        return ToolDispatcher(registry, engine, cwd=str(workspace), events=events, progress_interval_s=0.02, **kw)

    return _make


def test_builtin_registry():
    registry = ToolRegistry()
    register_builtin_tools(registry)
    assert {s.name for s in registry.list_specs()} == {"read", "list", "grep", "write", "bash", "apply_patch"}
    assert registry.read_only_names() == {"read", "list", "grep"}
    assert "apply_patch" in registry
    with pytest.raises(ValueError):
        register_builtin_tools(registry)


def test_read_with_line_numbers(ctx):
    out = ReadFileTool().execute(ctx, {"path": "notes.txt", "start_line": 2, "line_numbers": True})
    assert out["content"] == "2: two\n3: three"
    assert out["total_lines"] == 3


def test_read_refuses_paths_outside_workspace(ctx):
    out = ReadFileTool().execute(ctx, {"path": "../outside.txt"})
    assert "escapes" in out["error"]


def test_write_creates_parents(ctx, repo):
    out = WriteFileTool().execute(ctx, {"path": "new/dir/f.txt", "content": "x\n"})
    assert out["created"] is True
    assert (repo / "new" / "dir" / "f.txt").read_text(encoding="utf-8") == "x\n"


def test_list_and_grep(ctx):
    listing = ListDirTool().execute(ctx, {})
    assert listing["entries"] == ["pkg/", "notes.txt"]
    hits = GrepTool().execute(ctx, {"pattern": r"two", "include": "*.py"})
    assert hits["matches"] == ["pkg/mod.py:1: def two():"]


def test_grep_stops_when_cancelled(ctx):
    ctx.cancel_event.set()
    assert GrepTool().execute(ctx, {"pattern": "one"})["matches"] == []


@needs_shell
def test_bash_reports_exit_code(ctx):
    ok = BashTool().execute(ctx, {"command": "echo hi"})
    assert ok["stdout"].strip() == "hi"
    assert "error" not in ok
    bad = BashTool().execute(ctx, {"command": "exit 3"})
    assert bad["exit_code"] == 3
    assert bad["error"] == "exit code 3"


@needs_shell
def test_bash_killed_by_dispatcher_deadline(dispatcher):
    d = dispatcher(RecordingCallout(GrantScope.SESSION))
    result = asyncio.run(d.execute("bash", {"command": "sleep 10"}, timeout_s=0.3))
    assert result["timed_out"] is True


def test_apply_patch_tool_through_dispatcher(dispatcher, repo):
    callout = RecordingCallout(GrantScope.SESSION)
    d = dispatcher(callout)
    result = asyncio.run(d.execute("apply_patch", {"patch": PATCH}))
    assert result == {"applied": True, "message": "Patch applied successfully", "files": ["notes.txt"]}
    assert (repo / "notes.txt").read_text(encoding="utf-8") == "one\nTWO\nthree\n"
    assert [c[0] for c in callout.calls] == ["apply_patch"]


def test_apply_patch_tool_reports_rejects(dispatcher, repo):
    d = dispatcher(RecordingCallout(GrantScope.SESSION))
    statuses = []
    asyncio.run(d.execute("apply_patch", {"patch": PATCH}))
    result = asyncio.run(d.execute("apply_patch", {"patch": PATCH}, on_progress=lambda p: statuses.append(p.status)))
    assert result["error"] == "patch_rejected"
    assert result["applied"] is False
    assert "context mismatch" in result["rejects"]
    assert result["failed"] == ["notes.txt"]
    assert "notes.txt: file has 3 lines" in result["diagnostics"]
    assert "line_numbers=true" in result["suggestion"]
    assert statuses[-1] is ToolStatus.FAILED


def test_apply_patch_tool_validates_input(dispatcher):
    d = dispatcher(RecordingCallout(GrantScope.SESSION))
    assert asyncio.run(d.execute("apply_patch", {}))["error"] == "missing_patch"
    assert asyncio.run(d.execute("apply_patch", {"patch": "just text"}))["error"] == "invalid_patch_format"


def test_apply_patch_denied_leaves_file(dispatcher, repo):
    d = dispatcher(RecordingCallout(GrantScope.DENY))
    result = asyncio.run(d.execute("apply_patch", {"patch": PATCH}))
    assert result["error"] == "Permission denied by user"
    assert (repo / "notes.txt").read_text(encoding="utf-8") == "one\ntwo\nthree\n"
