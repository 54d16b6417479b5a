from __future__ import annotations

from .registry import ToolRegistry

from .builtin_tools.listdir import ListDirTool
from .builtin_tools.grep_tool import GrepTool
from .builtin_tools.file_read import ReadFileTool
from .builtin_tools.file_write import WriteFileTool
from .builtin_tools.patch_tool import PatchTool
from .builtin_tools.bash_tool import BashTool

def register_builtin_tools(registry: ToolRegistry) -> None:
    registry.register(ListDirTool())
    registry.register(GrepTool())
    registry.register(ReadFileTool())
    registry.register(WriteFileTool())
    registry.register(PatchTool())
    registry.register(BashTool())
