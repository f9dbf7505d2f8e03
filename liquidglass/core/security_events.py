from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from liquidglass.core.redaction import redact
from liquidglass.core.trace import resolve_trace_id


@dataclass(frozen=True)
class SecurityAuditLogger:
    """
    Append-only JSONL audit trail for policy decisions (violations, signature
    rejections, module trust changes). Details are redacted before writing.
    """

    path: str = os.path.join("logs", "security.jsonl")
    _lock: threading.Lock = field(default_factory=threading.Lock, compare=False, repr=False)

    def log(
        self,
        *,
        severity: str,
        event: str,
        outcome: str,
        module_id: str = "",
        details: Optional[Dict[str, Any]] = None,
        trace_id: Optional[str] = None,
    ) -> None:
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "trace_id": resolve_trace_id(trace_id),
            "severity": severity,
            "event": event,
            "module_id": module_id,
            "outcome": outcome,
            "details": redact(details or {}),
        }
        line = json.dumps(payload, ensure_ascii=False)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
