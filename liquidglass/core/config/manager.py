from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from liquidglass.core.config.io import (
    ReadResult,
    atomic_write_json,
    read_json_file,
    recover_from_corrupt,
    snapshot_last_known_good,
)
from liquidglass.core.config.models import (
    AppConfig,
    ModulesConfigFile,
    NetworkConfigFile,
    SandboxConfigFile,
    SecurityConfigFile,
)
from liquidglass.core.config.paths import ConfigFsPaths
from liquidglass.core.errors import ConfigError


CONFIG_FILES: Dict[str, type[BaseModel]] = {
    "security.json": SecurityConfigFile,
    "modules.json": ModulesConfigFile,
    "network.json": NetworkConfigFile,
    "sandbox.json": SandboxConfigFile,
}


class ConfigManager:
    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False, max_backups: int = 10):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger
        self.read_only = read_only
        self.max_backups = int(max_backups)
        self._cfg: Optional[AppConfig] = None

    # ---------- public API ----------
    def load_all(self) -> AppConfig:
        if not self.read_only:
            os.makedirs(self.fs.config_dir, exist_ok=True)
            os.makedirs(self.fs.backups_dir, exist_ok=True)
            os.makedirs(self.fs.last_known_good_dir, exist_ok=True)

        files = self._ensure_defaults(self._load_raw_files())
        cfg = self._validate_all(files)
        self._cfg = cfg

        if not self.read_only:
            snapshot_last_known_good(self.fs.config_dir, self.fs.last_known_good_dir)
        return cfg

    def get(self) -> AppConfig:
        if self._cfg is None:
            raise ConfigError("Config not loaded.")
        return self._cfg

    def read_non_sensitive(self, filename: str) -> Dict[str, Any]:
        """
        Read a single config file from config/ (safe recovery applied).
        """
        path = self.fs.config_file(filename)
        rr = read_json_file(path)
        if rr.ok:
            return rr.data
        if rr.corrupt and not self.read_only:
            data, _ = recover_from_corrupt(path, self.fs.backups_dir, self.fs.last_known_good_dir, max_backups=self.max_backups)
            return data
        return {}

    def save_non_sensitive(self, filename: str, data: Dict[str, Any]) -> None:
        """
        Validate, then atomic write + backups, then reload the whole set.
        """
        if self.read_only:
            raise ConfigError("Config manager is read-only.")
        if not isinstance(data, dict):
            raise ConfigError("Config data must be an object.")
        model = CONFIG_FILES.get(filename)
        if model is not None:
            try:
                model.model_validate(data)
            except ValidationError as e:
                raise ConfigError(f"{filename} invalid: {e}", filename=filename) from e
        path = self.fs.config_file(filename)
        atomic_write_json(path, data, self.fs.backups_dir, max_backups=self.max_backups)
        self.load_all()

    # ---------- internals ----------
    def _load_raw_files(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for name in CONFIG_FILES:
            path = self.fs.config_file(name)
            rr: ReadResult = read_json_file(path)
            if rr.ok:
                out[name] = rr.data
                continue
            if rr.corrupt and not self.read_only:
                data, recovered = recover_from_corrupt(path, self.fs.backups_dir, self.fs.last_known_good_dir, max_backups=self.max_backups)
                if self.logger:
                    self.logger.warning(f"Corrupt config {name} -> recovered={recovered}")
                out[name] = data
                continue
            # missing or other error: treat as missing -> defaults later
            out[name] = {}
        return out

    def _ensure_defaults(self, files: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        out = dict(files)
        for name, model in CONFIG_FILES.items():
            if out.get(name):
                continue
            dflt = model().model_dump()
            out[name] = dflt
            if self.logger:
                self.logger.warning(f"Missing config {name}; creating defaults.")
            if not self.read_only:
                atomic_write_json(self.fs.config_file(name), dflt, self.fs.backups_dir, max_backups=self.max_backups)
        return out

    def _validate_all(self, files: Dict[str, Dict[str, Any]]) -> AppConfig:
        try:
            return AppConfig(
                security=SecurityConfigFile.model_validate(files.get("security.json") or {}),
                modules=ModulesConfigFile.model_validate(files.get("modules.json") or {}),
                network=NetworkConfigFile.model_validate(files.get("network.json") or {}),
                sandbox=SandboxConfigFile.model_validate(files.get("sandbox.json") or {}),
            )
        except ValidationError as e:
            # user-friendly error
            raise ConfigError(str(e)) from e
