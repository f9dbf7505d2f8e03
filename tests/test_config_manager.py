from __future__ import annotations

import json
import os

import pytest

from liquidglass.core.config.io import ReadStatus, atomic_write_json, read_json_file
from liquidglass.core.config.manager import CONFIG_FILES, ConfigManager
from liquidglass.core.config.paths import ConfigFsPaths
from liquidglass.core.errors import ConfigError
from .helpers.config_builders import build_modules_config_v1, build_security_config_v1


class DummyLogger:
    def info(self, *_a, **_k): ...
    def warning(self, *_a, **_k): ...
    def error(self, *_a, **_k): ...


def _mk_cm(tmp_path) -> ConfigManager:
    fs = ConfigFsPaths(root=str(tmp_path))
    cm = ConfigManager(fs=fs, logger=DummyLogger(), read_only=False)
    cm.load_all()
    return cm


def test_missing_files_are_created_with_defaults(tmp_path):
    cm = _mk_cm(tmp_path)
    for name in CONFIG_FILES:
        assert os.path.exists(os.path.join(cm.fs.config_dir, name))
    cfg = cm.get()
    assert cfg.security.blocked_schemes == ["file", "ftp", "telnet", "data"]
    assert cfg.security.signature_max_age_days == 365
    assert cfg.network.timeout_seconds == 30.0
    assert cfg.modules.approved_manifest_urls == []


def test_lists_are_normalized(tmp_path):
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    with open(fs.security, "w", encoding="utf-8") as f:
        json.dump(build_security_config_v1(global_allowed_domains=["API.Example.com", "api.example.com", " "]), f)
    cfg = ConfigManager(fs=fs, logger=None).load_all()
    assert cfg.security.global_allowed_domains == ["api.example.com"]


def test_validation_rejects_unknown_fields(tmp_path):
    cm = _mk_cm(tmp_path)
    bad = cm.get().modules.model_dump()
    bad["unknown_field"] = 1
    with pytest.raises(ConfigError):
        cm.save_non_sensitive("modules.json", bad)


def test_invalid_file_on_disk_fails_load(tmp_path):
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    with open(fs.modules, "w", encoding="utf-8") as f:
        json.dump(build_modules_config_v1(search_max_workers=0), f)
    with pytest.raises(ConfigError):
        ConfigManager(fs=fs, logger=None).load_all()


def test_corrupt_json_triggers_recovery_and_backup(tmp_path):
    cm = _mk_cm(tmp_path)
    fs = cm.fs
    with open(fs.network, "w", encoding="utf-8") as f:
        f.write("{not json")
    cfg = cm.load_all()
    backups = os.listdir(fs.backups_dir)
    assert any("network.json" in b and "corrupt" in b for b in backups)
    assert cfg.network.user_agent == "LiquidGlass/1.0"


def test_atomic_save_round_trips(tmp_path):
    cm = _mk_cm(tmp_path)
    modules = cm.get().modules.model_dump()
    modules["approved_manifest_urls"] = ["https://modules.example.com/a.json"]
    cm.save_non_sensitive("modules.json", modules)

    with open(cm.fs.modules, "r", encoding="utf-8") as f:
        assert json.load(f)["approved_manifest_urls"] == ["https://modules.example.com/a.json"]
    assert cm.get().modules.approved_manifest_urls == ["https://modules.example.com/a.json"]
    assert cm.read_non_sensitive("modules.json")["approved_manifest_urls"] == ["https://modules.example.com/a.json"]


def test_read_only_manager_writes_nothing(tmp_path):
    cm = ConfigManager(fs=ConfigFsPaths(root=str(tmp_path)), logger=None, read_only=True)
    cfg = cm.load_all()
    assert cfg.sandbox.call_timeout_seconds == 30.0
    assert not os.path.exists(cm.fs.config_dir)
    with pytest.raises(ConfigError):
        cm.save_non_sensitive("modules.json", {})


def test_get_before_load_raises(tmp_path):
    with pytest.raises(ConfigError):
        ConfigManager(fs=ConfigFsPaths(root=str(tmp_path))).get()


def test_read_statuses(tmp_path):
    assert read_json_file(str(tmp_path / "nope.json")).status == ReadStatus.MISSING
    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2]", encoding="utf-8")
    rr = read_json_file(str(bad))
    assert rr.status == ReadStatus.NOT_OBJECT
    assert rr.corrupt


def test_backups_are_pruned_per_file(tmp_path):
    target = str(tmp_path / "modules.json")
    backups = str(tmp_path / "backups")
    for i in range(5):
        atomic_write_json(target, {"n": i}, backups, max_backups=2)
    names = os.listdir(backups)
    assert len(names) == 2
    assert all(n.startswith("modules.json.") and n.endswith(".prewrite.json") for n in names)
    with open(target, "r", encoding="utf-8") as f:
        assert json.load(f) == {"n": 4}
    assert not [n for n in os.listdir(str(tmp_path)) if n.endswith(".tmp")]
