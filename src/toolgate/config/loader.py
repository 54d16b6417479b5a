from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_dir

from .models import CoreConfig

APP_NAME = "toolgate"


def _candidate_paths(cwd: Path) -> list[Path]:
    # project-level (higher priority)
    return [
        cwd / ".toolgate.json",
        cwd / "toolgate.json",
        cwd / ".toolgate.yaml",
        cwd / "toolgate.yaml",
    ]


def _global_candidate_paths() -> list[Path]:
    cfg_dir = Path(user_config_dir(APP_NAME))
    return [
        cfg_dir / "toolgate.json",
        cfg_dir / "toolgate.yaml",
    ]


def _load_file(p: Path) -> dict[str, Any] | None:
    try:
        text = p.read_text(encoding="utf-8")
        if p.suffix in {".yaml", ".yml"}:
            obj = yaml.safe_load(text)
        else:
            obj = json.loads(text)
    except (OSError, ValueError, yaml.YAMLError):
        return None
    if isinstance(obj, dict):
        return obj
    return None


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dicts(out[k], v)  # type: ignore
        else:
            out[k] = v
    return out


def load_core_config(*, cwd: Path, explicit_path: Path | None = None, include_global: bool = True) -> CoreConfig:
    """Load the core config.

    Merge order: global < project < explicit_path.
    """
    merged: dict[str, Any] = {}
    loaded_from: Path | None = None

    if include_global:
        for p in _global_candidate_paths():
            if p.exists() and p.is_file():
                obj = _load_file(p)
                if obj is not None:
                    merged = _merge_dicts(merged, obj)
                    loaded_from = p

    for p in _candidate_paths(cwd):
        if p.exists() and p.is_file():
            obj = _load_file(p)
            if obj is not None:
                merged = _merge_dicts(merged, obj)
                loaded_from = p
                break  # first match wins for project-level

    if explicit_path is not None:
        p = explicit_path.expanduser().resolve()
        if p.exists() and p.is_file():
            obj = _load_file(p)
            if obj is not None:
                merged = _merge_dicts(merged, obj)
                loaded_from = p

    cfg = CoreConfig.from_obj(merged, base_dir=cwd)
    cfg.loaded_from = loaded_from
    return cfg
