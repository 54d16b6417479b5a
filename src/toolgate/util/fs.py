from __future__ import annotations
from pathlib import Path

class FsError(RuntimeError):
    pass

def resolve_path(cwd: Path, path_str: str) -> Path:
    """Resolve a tool-supplied path and keep it inside the workspace."""
    root = cwd.resolve()
    p = Path(path_str).expanduser()
    p = p.resolve() if p.is_absolute() else (root / p).resolve()
    try:
        p.relative_to(root)
    except ValueError:
        raise FsError(f"Path escapes working directory: {path_str}") from None
    return p

def rel_display(cwd: Path, p: Path) -> str:
    try:
        return str(p.resolve().relative_to(cwd.resolve()))
    except ValueError:
        return str(p)

def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")
