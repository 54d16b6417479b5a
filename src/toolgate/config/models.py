from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

DenyPolicy = Literal["reprompt", "session"]

DEFAULT_TIMEOUT_S = 3600.0
DEFAULT_PROGRESS_INTERVAL_S = 0.5


def _str_list(obj: Any) -> list[str]:
    if not isinstance(obj, list):
        return []
    return [x.strip() for x in obj if isinstance(x, str) and x.strip()]


def _positive_float(obj: Any, default: float) -> float:
    if isinstance(obj, bool) or not isinstance(obj, (int, float)):
        return default
    return float(obj) if obj > 0 else default


@dataclass
class CoreConfig:
    """Runtime knobs for the dispatcher and the permission engine.

    Loaded from JSON or YAML (see loader.py); every field has a default so an
    empty or missing config is valid.
    """

    default_timeout_s: float = DEFAULT_TIMEOUT_S
    progress_interval_s: float = DEFAULT_PROGRESS_INTERVAL_S
    deny_policy: DenyPolicy = "reprompt"
    read_only_tools: list[str] = field(default_factory=list)
    deny_tools: list[str] = field(default_factory=list)
    grants_path: Path | None = None

    loaded_from: Path | None = None

    @staticmethod
    def from_obj(obj: Any, base_dir: Path | None = None) -> "CoreConfig":
        cfg = CoreConfig()
        if not isinstance(obj, dict):
            return cfg
        cfg.default_timeout_s = _positive_float(obj.get("default_timeout_s"), DEFAULT_TIMEOUT_S)
        cfg.progress_interval_s = _positive_float(obj.get("progress_interval_s"), DEFAULT_PROGRESS_INTERVAL_S)
        dp = obj.get("deny_policy")
        if dp in {"reprompt", "session"}:
            cfg.deny_policy = dp
        cfg.read_only_tools = _str_list(obj.get("read_only_tools"))
        cfg.deny_tools = _str_list(obj.get("deny_tools"))
        gp = obj.get("grants_path")
        if isinstance(gp, str) and gp.strip():
            p = Path(gp.strip()).expanduser()
            if not p.is_absolute() and base_dir is not None:
                p = base_dir / p
            cfg.grants_path = p
        return cfg
