"""
JSON file primitives shared by the config manager and the module state store.

Writes go to a temp file in the target directory and are moved into place with
os.replace, optionally after an fsync. Config writes keep a bounded set of
timestamped backups per file; corrupt files are moved aside and replaced from
the last-known-good snapshot when one exists.
"""

from __future__ import annotations

import datetime as dt
import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ReadStatus(str, Enum):
    OK = "ok"
    MISSING = "missing"
    CORRUPT = "corrupt"
    NOT_OBJECT = "not_object"
    IO_ERROR = "io_error"


@dataclass(frozen=True)
class ReadResult:
    status: ReadStatus
    data: Dict[str, Any] = field(default_factory=dict)
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ReadStatus.OK

    @property
    def corrupt(self) -> bool:
        return self.status in (ReadStatus.CORRUPT, ReadStatus.NOT_OBJECT)


def _stamp() -> str:
    # microseconds keep two backups taken in the same second apart
    return dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


def read_json_file(path: str) -> ReadResult:
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except FileNotFoundError:
        return ReadResult(ReadStatus.MISSING)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return ReadResult(ReadStatus.CORRUPT, detail=str(e))
    except OSError as e:
        return ReadResult(ReadStatus.IO_ERROR, detail=str(e))
    if not isinstance(obj, dict):
        return ReadResult(ReadStatus.NOT_OBJECT, detail=type(obj).__name__)
    return ReadResult(ReadStatus.OK, data=obj)


def _backups_for(backups_dir: str, filename: str) -> List[str]:
    prefix = f"{filename}."
    try:
        names = [n for n in os.listdir(backups_dir) if n.startswith(prefix)]
    except FileNotFoundError:
        return []
    paths = [os.path.join(backups_dir, n) for n in names]
    return sorted(paths, key=os.path.getmtime, reverse=True)


def prune_backups(backups_dir: str, filename: str, *, keep: int) -> int:
    removed = 0
    for p in _backups_for(backups_dir, filename)[max(0, int(keep)):]:
        try:
            os.remove(p)
            removed += 1
        except OSError:
            continue
    return removed


def backup_file(path: str, backups_dir: str, *, reason: str, max_backups: int = 10) -> Optional[str]:
    """Copy `path` to backups/<name>.<stamp>.<reason>.json. Returns the copy, or None."""
    if not os.path.isfile(path):
        return None
    os.makedirs(backups_dir, exist_ok=True)
    name = os.path.basename(path)
    dest = os.path.join(backups_dir, f"{name}.{_stamp()}.{reason}.json")
    try:
        shutil.copy2(path, dest)
    except OSError:
        return None
    prune_backups(backups_dir, name, keep=max_backups)
    return dest


def atomic_write_json(
    path: str,
    data: Dict[str, Any],
    backups_dir: Optional[str] = None,
    *,
    max_backups: int = 10,
    fsync: bool = False,
) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    if backups_dir:
        backup_file(path, backups_dir, reason="prewrite", max_backups=max_backups)

    fd, tmp = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            f.write("\n")
            if fsync:
                f.flush()
                os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def recover_from_corrupt(path: str, backups_dir: str, last_known_good_dir: str, *, max_backups: int = 10) -> Tuple[Dict[str, Any], bool]:
    """
    Move a corrupt file to backups/<name>.<stamp>.corrupt.json, then restore
    last_known_good/<name> into place if it is readable.

    Returns (data, recovered). When nothing can be restored the data is empty
    and the caller falls back to defaults.
    """
    name = os.path.basename(path)
    os.makedirs(backups_dir, exist_ok=True)
    if os.path.exists(path):
        try:
            shutil.move(path, os.path.join(backups_dir, f"{name}.{_stamp()}.corrupt.json"))
        except OSError:
            pass

    lkg = read_json_file(os.path.join(last_known_good_dir, name))
    if not lkg.ok:
        return {}, False
    atomic_write_json(path, lkg.data, backups_dir, max_backups=max_backups)
    return lkg.data, True


def snapshot_last_known_good(config_dir: str, last_known_good_dir: str) -> List[str]:
    """Copy every *.json file in config_dir into the snapshot dir. Returns the names copied."""
    os.makedirs(last_known_good_dir, exist_ok=True)
    copied: List[str] = []
    for name in sorted(os.listdir(config_dir)):
        src = os.path.join(config_dir, name)
        if not name.endswith(".json") or not os.path.isfile(src):
            continue
        try:
            shutil.copy2(src, os.path.join(last_known_good_dir, name))
        except OSError:
            continue
        copied.append(name)
    return copied
