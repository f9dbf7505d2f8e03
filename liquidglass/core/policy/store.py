"""
PolicyStore: the single owner of network-policy state.

Holds the global and per-module domain allowlists, blocked schemes, the
trusted-certificate table, rate-limit state and the bounded violation log.
Every mutation happens under one lock; readers receive copies, never the live
collections.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Tuple

from liquidglass.core.config.models import DEFAULT_BLOCKED_SCHEMES, DEFAULT_GLOBAL_ALLOWED_DOMAINS
from liquidglass.core.policy.models import (
    BUILTIN_CERTIFICATE_ID,
    BUILTIN_CERTIFICATE_MATERIAL,
    CertificateKind,
    PolicyViolation,
    RateLimitState,
    TrustedCertificate,
)
from liquidglass.core.redaction import mask_url
from liquidglass.core.security_events import SecurityAuditLogger


def _normalize_domains(domains: Iterable[str]) -> Tuple[str, ...]:
    out: List[str] = []
    for d in domains or []:
        s = str(d or "").strip().lower()
        if s and s not in out:
            out.append(s)
    return tuple(out)


class PolicyStore:
    def __init__(
        self,
        *,
        global_allowed_domains: Optional[Iterable[str]] = None,
        blocked_schemes: Optional[Iterable[str]] = None,
        max_violations: int = 1000,
        time_fn: Callable[[], float] = time.time,
        audit_logger: Optional[SecurityAuditLogger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._time = time_fn
        self._lock = threading.RLock()
        self.audit_logger = audit_logger
        self.logger = logger or logging.getLogger("liquidglass.policy")

        domains = DEFAULT_GLOBAL_ALLOWED_DOMAINS if global_allowed_domains is None else global_allowed_domains
        schemes = DEFAULT_BLOCKED_SCHEMES if blocked_schemes is None else blocked_schemes
        self._global_domains: Tuple[str, ...] = _normalize_domains(domains)
        self._blocked_schemes = frozenset(str(s).strip().lower() for s in schemes if str(s or "").strip())

        self._module_domains: Dict[str, Tuple[str, ...]] = {}
        self._violations: Deque[PolicyViolation] = deque(maxlen=max(1, int(max_violations)))
        self._rate_limits: Dict[str, RateLimitState] = {}
        self._certificates: Dict[str, TrustedCertificate] = {
            BUILTIN_CERTIFICATE_ID: TrustedCertificate(
                certificate_id=BUILTIN_CERTIFICATE_ID,
                material=BUILTIN_CERTIFICATE_MATERIAL,
                kind=CertificateKind.OPAQUE,
            )
        }

    def now(self) -> float:
        return float(self._time())

    # ---- domains / schemes ----
    @property
    def global_allowed_domains(self) -> List[str]:
        return list(self._global_domains)

    @property
    def blocked_schemes(self) -> List[str]:
        return sorted(self._blocked_schemes)

    def register_module_domains(self, module_id: str, domains: Iterable[str]) -> None:
        normalized = _normalize_domains(domains)
        with self._lock:
            self._module_domains[str(module_id)] = normalized

    def unregister_module_domains(self, module_id: str) -> None:
        with self._lock:
            self._module_domains.pop(str(module_id), None)

    def module_domains(self, module_id: str) -> List[str]:
        with self._lock:
            return list(self._module_domains.get(str(module_id), ()))

    def is_scheme_blocked(self, scheme: str) -> bool:
        return str(scheme or "").lower() in self._blocked_schemes

    def is_domain_allowed(self, host: str, module_id: str) -> bool:
        # Plain suffix match: "eviltidal.com" matches "tidal.com". Kept for
        # compatibility with existing allowlists; see DESIGN.md.
        h = str(host or "").lower()
        if any(h.endswith(entry) for entry in self._global_domains):
            return True
        with self._lock:
            entries = self._module_domains.get(str(module_id), ())
        return any(h.endswith(entry) for entry in entries)

    # ---- violations ----
    def record_violation(self, module_id: str, reason: str, url: Optional[str] = None) -> PolicyViolation:
        violation = PolicyViolation(module_id=str(module_id), reason=str(reason), url=url, timestamp=self.now())
        with self._lock:
            self._violations.append(violation)
        self.logger.warning("Policy violation [%s]: %s", violation.module_id, mask_url(violation.reason))
        if self.audit_logger is not None:
            try:
                self.audit_logger.log(
                    severity="WARN",
                    event="policy.violation",
                    outcome="denied",
                    module_id=violation.module_id,
                    details={"violation_id": violation.id, "reason": mask_url(violation.reason), "url": mask_url(url) if url else None},
                )
            except OSError as e:
                self.logger.error("Unable to write security audit line: %s", e)
        return violation

    def get_violations(self, module_id: Optional[str] = None) -> List[PolicyViolation]:
        with self._lock:
            if module_id is None:
                return list(self._violations)
            return [v for v in self._violations if v.module_id == module_id]

    def clear_violations(self, module_id: Optional[str] = None) -> int:
        with self._lock:
            before = len(self._violations)
            if module_id is None:
                self._violations.clear()
            else:
                kept = [v for v in self._violations if v.module_id != module_id]
                self._violations.clear()
                self._violations.extend(kept)
            return before - len(self._violations)

    # ---- rate limiting ----
    def record_rate_limit(self, module_id: str, retry_after_seconds: float) -> RateLimitState:
        mid = str(module_id)
        with self._lock:
            prev = self._rate_limits.get(mid)
            state = RateLimitState(
                unlocks_at=self.now() + max(0.0, float(retry_after_seconds)),
                hit_count=(prev.hit_count if prev is not None else 0) + 1,
            )
            self._rate_limits[mid] = state
        self.logger.info("Rate limit recorded for %s: retry after %.1fs (hit %d)", mid, float(retry_after_seconds), state.hit_count)
        return state

    def rate_limit_state(self, module_id: str) -> Optional[RateLimitState]:
        with self._lock:
            return self._rate_limits.get(str(module_id))

    def is_rate_limited(self, module_id: str) -> bool:
        state = self.rate_limit_state(module_id)
        if state is None:
            return False
        return self.now() < state.unlocks_at

    def rate_limit_remaining(self, module_id: str) -> Optional[float]:
        state = self.rate_limit_state(module_id)
        if state is None:
            return None
        remaining = state.unlocks_at - self.now()
        return remaining if remaining > 0 else None

    # ---- trusted certificates ----
    def add_trusted_certificate(self, certificate_id: str, material: bytes, kind: CertificateKind = CertificateKind.OPAQUE) -> None:
        cert = TrustedCertificate(certificate_id=str(certificate_id), material=bytes(material), kind=CertificateKind(kind))
        with self._lock:
            self._certificates[cert.certificate_id] = cert

    def get_trusted_certificate(self, certificate_id: str) -> Optional[TrustedCertificate]:
        with self._lock:
            return self._certificates.get(str(certificate_id))

    def trusted_certificate_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._certificates)
