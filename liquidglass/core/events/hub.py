from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from liquidglass.core.events.models import ModuleEvent


Handler = Callable[[ModuleEvent], None]


def _matches(pattern: str, event_type: str) -> bool:
    if pattern == "*":
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return pattern == event_type


@dataclass
class Subscription:
    """
    Handle returned by EventHub.subscribe. Dropping the registration is
    explicit: call cancel(), or use the handle as a context manager.
    """

    event_type: str
    handler: Handler
    _hub: Optional["EventHub"] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._hub is not None

    def cancel(self) -> None:
        hub, self._hub = self._hub, None
        if hub is not None:
            hub._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.cancel()


class EventHub:
    """
    In-process synchronous observer hub for registry events.

    - event_type patterns: exact ("module.enabled"), prefix ("module.*"), all ("*")
    - delivery happens on the publishing thread, in subscription order
    - handler failures are logged and never reach the publisher
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None, keep_recent: int = 200):
        self.logger = logger or logging.getLogger("liquidglass.events")
        self._lock = threading.Lock()
        self._subs: List[Subscription] = []
        self._recent: Deque[ModuleEvent] = deque(maxlen=max(1, int(keep_recent)))

    def subscribe(self, event_type: str, handler: Handler) -> Subscription:
        if not callable(handler):
            raise ValueError("handler must be callable")
        sub = Subscription(event_type=str(event_type), handler=handler, _hub=self)
        with self._lock:
            self._subs.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            self._subs = [s for s in self._subs if s is not sub]

    def publish(self, ev: ModuleEvent) -> int:
        with self._lock:
            self._recent.append(ev)
            targets = [s for s in self._subs if _matches(s.event_type, ev.event_type)]
        delivered = 0
        for sub in targets:
            try:
                sub.handler(ev)
                delivered += 1
            except Exception as e:  # noqa: BLE001
                self.logger.error("Event handler failed for %s: %s", ev.event_type, e)
        return delivered

    def emit(self, event_type: str, *, module_id: str = "", payload: Optional[Dict[str, Any]] = None, trace_id: Optional[str] = None) -> int:
        return self.publish(ModuleEvent(event_type=event_type, module_id=module_id, payload=payload or {}, trace_id=trace_id))

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def recent(self, n: int = 50) -> List[ModuleEvent]:
        with self._lock:
            items = list(self._recent)
        return items[-max(1, int(n)):]
