from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from .base import Tool, ToolSpec

@dataclass
class ToolRegistry:
    """Name -> tool lookup shared by the dispatcher and the CLI."""

    _tools: dict[str, Tool] = field(default_factory=dict)

    def register(self, tool: Tool) -> None:
        name = tool.spec.name
        if name in self._tools:
            raise ValueError(f"Tool already registered: {name}")
        self._tools[name] = tool

    def get(self, name: str) -> Tool:
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def get_optional(self, name: str) -> Optional[Tool]:
        # Unknown names become an error payload in the dispatcher, not an exception.
        return self._tools.get(name)

    def list_specs(self) -> list[ToolSpec]:
        return [t.spec for t in self._tools.values()]

    def read_only_names(self) -> set[str]:
        return {t.spec.name for t in self._tools.values() if t.spec.read_only}

    def __contains__(self, name: str) -> bool:
        return name in self._tools
