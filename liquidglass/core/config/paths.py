from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    """Filesystem layout under one root: config/, state/ and logs/."""

    root: str = "."

    def resolve(self, path: str) -> str:
        """Relative paths from config files are taken relative to the root."""
        return path if os.path.isabs(path) else os.path.join(self.root, path)

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def state_dir(self) -> str:
        return os.path.join(self.root, "state")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    @property
    def last_known_good_dir(self) -> str:
        return os.path.join(self.backups_dir, "last_known_good")

    def config_file(self, name: str) -> str:
        return os.path.join(self.config_dir, name)

    @property
    def security(self) -> str:
        return self.config_file("security.json")

    @property
    def modules(self) -> str:
        return self.config_file("modules.json")

    @property
    def network(self) -> str:
        return self.config_file("network.json")

    @property
    def sandbox(self) -> str:
        return self.config_file("sandbox.json")
