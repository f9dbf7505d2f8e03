from __future__ import annotations

import contextlib
import contextvars
import re
import uuid
from typing import Iterator, Optional

TRACE_HEADER = "X-Trace-Id"

# Client-supplied ids are echoed into headers and audit lines.
_VALID_TRACE_ID = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")

_current: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("liquidglass.trace_id", default=None)


def new_trace_id() -> str:
    return uuid.uuid4().hex


def is_valid_trace_id(value: Optional[str]) -> bool:
    return bool(value) and bool(_VALID_TRACE_ID.match(str(value)))


def current_trace_id(default: Optional[str] = None) -> Optional[str]:
    return _current.get() or default


def resolve_trace_id(candidate: Optional[str] = None) -> str:
    """Use a well-formed candidate, else the active trace id, else a fresh one."""
    if is_valid_trace_id(candidate):
        return str(candidate)
    return current_trace_id() or new_trace_id()


@contextlib.contextmanager
def trace_context(trace_id: Optional[str]) -> Iterator[str]:
    resolved = resolve_trace_id(trace_id)
    token = _current.set(resolved)
    try:
        yield resolved
    finally:
        _current.reset(token)
