from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class _Entry:
    value: Any
    expires_at: float


class ResponseCache:
    """
    Best-effort in-memory TTL cache. A miss is always safe: callers fall back
    to the live module. Oldest entries are evicted past max_entries.
    """

    def __init__(self, *, default_ttl_seconds: float = 300.0, max_entries: int = 500, time_fn: Callable[[], float] = time.time):
        self.default_ttl_seconds = float(default_ttl_seconds)
        self.max_entries = max(1, int(max_entries))
        self._time = time_fn
        self._lock = threading.Lock()
        self._data: "OrderedDict[str, _Entry]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        now = float(self._time())
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        if ttl <= 0:
            return
        with self._lock:
            self._data[key] = _Entry(value=value, expires_at=float(self._time()) + ttl)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def remove_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
