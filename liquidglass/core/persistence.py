from __future__ import annotations

import copy
import logging
import os
import threading
from typing import Any, Dict, List, Optional

from liquidglass.core.config.io import ReadStatus, atomic_write_json, read_json_file


ENABLED_KEY_PREFIX = "module.enabled."
CONFIGURED_KEY_PREFIX = "module.configured."
DYNAMIC_MODULES_KEY = "dynamic.modules"


def enabled_key(module_id: str) -> str:
    return f"{ENABLED_KEY_PREFIX}{module_id}"


def configured_key(module_id: str) -> str:
    return f"{CONFIGURED_KEY_PREFIX}{module_id}"


class KeyValueStore:
    """
    Small persistent key/value seam for registry state. Writes complete before
    set() returns.
    """

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def contains(self, key: str) -> bool:
        return key in self.keys()

    def get_bool(self, key: str, default: bool = False) -> bool:
        v = self.get(key, None)
        if v is None:
            return default
        return bool(v)

    def set_bool(self, key: str, value: bool) -> None:
        self.set(key, bool(value))


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return copy.deepcopy(self._data.get(key, default))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """
    One JSON object on disk, rewritten atomically (temp file + os.replace) on
    every mutation. A corrupt file is moved aside and treated as empty.
    """

    def __init__(self, path: str, *, fsync: bool = True, logger: Optional[logging.Logger] = None):
        self.path = path
        self.fsync = bool(fsync)
        self.logger = logger or logging.getLogger("liquidglass.persistence")
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        rr = read_json_file(self.path)
        if rr.ok:
            return dict(rr.data)
        if rr.status != ReadStatus.MISSING:
            self.logger.warning("State file %s unreadable (%s); starting empty.", self.path, rr.status.value)
        if rr.corrupt:
            try:
                os.replace(self.path, self.path + ".corrupt")
            except OSError:
                pass
        return {}

    def _flush(self) -> None:
        atomic_write_json(self.path, self._data, fsync=self.fsync)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return copy.deepcopy(self._data.get(key, default))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._flush()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)

    def reload(self) -> None:
        with self._lock:
            self._data = self._load()
