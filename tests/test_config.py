from __future__ import annotations

import json
from pathlib import Path

from toolgate.config.loader import load_core_config
from toolgate.config.models import DEFAULT_TIMEOUT_S, CoreConfig


def test_defaults_without_files(tmp_path):
    cfg = load_core_config(cwd=tmp_path, include_global=False)
    assert cfg.default_timeout_s == DEFAULT_TIMEOUT_S == 3600.0
    assert cfg.progress_interval_s == 0.5
    assert cfg.deny_policy == "reprompt"
    assert cfg.grants_path is None
    assert cfg.loaded_from is None


def test_project_yaml(tmp_path):
    (tmp_path / "toolgate.yaml").write_text(
        "default_timeout_s: 30\n"
        "deny_policy: session\n"
        "read_only_tools: [lsp_*, ' outline ']\n"
        "deny_tools: [bash]\n"
        "grants_path: .state/grants.json\n",
        encoding="utf-8",
    )
    cfg = load_core_config(cwd=tmp_path, include_global=False)
    assert cfg.default_timeout_s == 30.0
    assert cfg.deny_policy == "session"
    assert cfg.read_only_tools == ["lsp_*", "outline"]
    assert cfg.deny_tools == ["bash"]
    assert cfg.grants_path == tmp_path / ".state" / "grants.json"
    assert cfg.loaded_from == tmp_path / "toolgate.yaml"


def test_json_project_file_wins_over_yaml(tmp_path):
    (tmp_path / ".toolgate.json").write_text(json.dumps({"default_timeout_s": 10}), encoding="utf-8")
    (tmp_path / "toolgate.yaml").write_text("default_timeout_s: 99\n", encoding="utf-8")
    assert load_core_config(cwd=tmp_path, include_global=False).default_timeout_s == 10.0


def test_explicit_path_overrides_project(tmp_path):
    (tmp_path / "toolgate.json").write_text(
        json.dumps({"default_timeout_s": 10, "deny_tools": ["bash"]}), encoding="utf-8"
    )
    explicit = tmp_path / "ci.yaml"
    explicit.write_text("default_timeout_s: 5\n", encoding="utf-8")
    cfg = load_core_config(cwd=tmp_path, explicit_path=explicit, include_global=False)
    assert cfg.default_timeout_s == 5.0
    assert cfg.deny_tools == ["bash"]
    assert cfg.loaded_from == explicit.resolve()


def test_invalid_values_fall_back(tmp_path):
    cfg = CoreConfig.from_obj(
        {
            "default_timeout_s": -1,
            "progress_interval_s": True,
            "deny_policy": "forever",
            "read_only_tools": "read",
            "deny_tools": ["", 3, "x"],
        }
    )
    assert cfg.default_timeout_s == DEFAULT_TIMEOUT_S
    assert cfg.progress_interval_s == 0.5
    assert cfg.deny_policy == "reprompt"
    assert cfg.read_only_tools == []
    assert cfg.deny_tools == ["x"]


def test_unreadable_file_is_ignored(tmp_path):
    (tmp_path / "toolgate.json").write_text("{broken", encoding="utf-8")
    cfg = load_core_config(cwd=tmp_path, include_global=False)
    assert cfg.default_timeout_s == DEFAULT_TIMEOUT_S
    assert cfg.loaded_from is None


def test_non_mapping_is_default():
    assert CoreConfig.from_obj(["nope"]) == CoreConfig()


def test_absolute_grants_path_kept(tmp_path: Path):
    target = tmp_path / "abs" / "g.json"
    cfg = CoreConfig.from_obj({"grants_path": str(target)}, base_dir=tmp_path / "elsewhere")
    assert cfg.grants_path == target
