from __future__ import annotations

import json
import sys

from liquidglass.core.config import ConfigManager
from liquidglass.core.config.paths import ConfigFsPaths
from liquidglass.core.redaction import redact


def main() -> None:
    root = sys.argv[1] if len(sys.argv) > 1 else "."
    cm = ConfigManager(fs=ConfigFsPaths(root), logger=None, read_only=True)
    cfg = cm.load_all()
    print(json.dumps(redact(cfg.model_dump(mode="json")), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
