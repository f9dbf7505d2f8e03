from __future__ import annotations

from typing import Any, Dict
from urllib.parse import unquote_plus, urlsplit, urlunsplit


REDACT_KEYS = {
    "password",
    "secret",
    "token",
    "api_key",
    "key",
    "authorization",
    "cookie",
    "session",
    "source_code",
}

# Query parameter names that never leave the process unmasked.
SENSITIVE_QUERY_PARAMS = {"token", "key", "secret", "password", "auth", "session", "sig", "signature"}


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            if str(k).lower() in REDACT_KEYS:
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact(v)
        return out
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    return obj


def redact(obj: Any) -> Any:
    return _redact(obj)


def query_param_name(pair: str) -> str:
    return unquote_plus(pair.split("=", 1)[0]).strip().lower()


def mask_url(url: str, *, names: set[str] = SENSITIVE_QUERY_PARAMS) -> str:
    """
    Log-friendly rendering: sensitive query values replaced with ***.
    Unlike sanitize_url this keeps the parameter names visible.
    """
    try:
        parts = urlsplit(str(url))
    except ValueError:
        return str(url)
    if not parts.query:
        return str(url)
    masked = []
    for pair in parts.query.split("&"):
        if pair and query_param_name(pair) in names:
            masked.append(pair.split("=", 1)[0] + "=***")
        else:
            masked.append(pair)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(masked), parts.fragment))
