from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from liquidglass.core.errors import (
    BlockedSchemeError,
    DomainNotAllowedError,
    InsecureConnectionError,
    InvalidURLError,
)
from liquidglass.core.policy.store import PolicyStore
from liquidglass.core.redaction import SENSITIVE_QUERY_PARAMS, query_param_name


def sanitize_url(url: str) -> str:
    """
    Drop query parameters whose name is sensitive (token, key, secret, ...).

    The remaining pairs keep their raw text and order. Unparseable input, or
    input without a query, is returned unchanged.
    """
    raw = str(url)
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw
    if not parts.query:
        return raw
    kept = [pair for pair in parts.query.split("&") if not pair or query_param_name(pair) not in SENSITIVE_QUERY_PARAMS]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(kept), parts.fragment))


class URLValidator:
    """
    Outbound URL gate. Checks run in a fixed order and the first failure wins:
    missing scheme, blocked scheme, non-https, missing host, allowlist.
    Policy failures are recorded on the store before raising.
    """

    def __init__(self, store: PolicyStore):
        self.store = store

    def validate_module_url(self, url: str, module_id: str) -> None:
        raw = str(url or "").strip()
        try:
            parts = urlsplit(raw)
        except ValueError as e:
            raise InvalidURLError("Malformed URL", module_id=module_id) from e

        scheme = (parts.scheme or "").lower()
        if not scheme:
            raise InvalidURLError("Missing URL scheme", module_id=module_id)

        if self.store.is_scheme_blocked(scheme):
            self.store.record_violation(module_id, f"Blocked URL scheme: {scheme}", url=sanitize_url(raw))
            raise BlockedSchemeError(scheme, module_id=module_id)

        if scheme != "https":
            safe = sanitize_url(raw)
            self.store.record_violation(module_id, f"Non-HTTPS URL: {safe}", url=safe)
            raise InsecureConnectionError(scheme, module_id=module_id)

        host: Optional[str] = parts.hostname
        if not host:
            raise InvalidURLError("Missing host", module_id=module_id)
        host = host.lower()

        if not self.store.is_domain_allowed(host, module_id):
            self.store.record_violation(module_id, f"Domain not in allowlist: {host}", url=sanitize_url(raw))
            raise DomainNotAllowedError(host, module_id=module_id)

    def is_allowed(self, url: str, module_id: str) -> bool:
        try:
            self.validate_module_url(url, module_id)
        except (InvalidURLError, BlockedSchemeError, InsecureConnectionError, DomainNotAllowedError):
            return False
        return True
