from __future__ import annotations

import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, List, Optional

from liquidglass.core.redaction import mask_url


class NetworkLogType(str, Enum):
    SEARCH = "search"
    STREAM = "stream"
    REQUEST = "request"
    ERROR = "error"
    POLICY = "policy"


@dataclass(frozen=True)
class NetworkLogEntry:
    module_id: str
    type: NetworkLogType
    message: str
    timestamp: float
    duration: Optional[float] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class NetworkLogger:
    """
    Privacy-aware tail of module network activity, kept in memory for the
    module manager screens. URLs are masked before they are stored.
    """

    def __init__(self, *, max_entries: int = 1000, time_fn: Callable[[], float] = time.time):
        self._time = time_fn
        self._lock = threading.Lock()
        self._entries: Deque[NetworkLogEntry] = deque(maxlen=max(1, int(max_entries)))

    def _append(self, module_id: str, kind: NetworkLogType, message: str, duration: Optional[float] = None) -> NetworkLogEntry:
        entry = NetworkLogEntry(module_id=str(module_id), type=kind, message=message, timestamp=float(self._time()), duration=duration)
        with self._lock:
            self._entries.append(entry)
        return entry

    def log_request(self, module_id: str, url: str, method: str, duration: float, status_code: Optional[int]) -> NetworkLogEntry:
        return self._append(module_id, NetworkLogType.REQUEST, f"{method.upper()} {mask_url(url)} -> {status_code or 0}", duration)

    def log_search(self, module_id: str, query: str, result_count: int, duration: float) -> NetworkLogEntry:
        return self._append(module_id, NetworkLogType.SEARCH, f"Search '{query}' -> {int(result_count)} results", duration)

    def log_stream_resolution(self, module_id: str, track_id: str, quality_name: str, duration: float) -> NetworkLogEntry:
        return self._append(module_id, NetworkLogType.STREAM, f"Stream {track_id} @ {quality_name}", duration)

    def log_error(self, module_id: str, error: BaseException) -> NetworkLogEntry:
        return self._append(module_id, NetworkLogType.ERROR, mask_url(str(error)))

    def log_policy_violation(self, module_id: str, reason: str) -> NetworkLogEntry:
        return self._append(module_id, NetworkLogType.POLICY, f"POLICY: {mask_url(reason)}")

    def get_logs(self, module_id: Optional[str] = None, limit: int = 100) -> List[NetworkLogEntry]:
        with self._lock:
            items = list(self._entries)
        if module_id is not None:
            items = [e for e in items if e.module_id == module_id]
        n = max(0, int(limit))
        return items[-n:] if n else []

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
