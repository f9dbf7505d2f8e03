from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from liquidglass.core.redaction import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass(eq=False)
class LiquidGlassError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Validation / trust (security policy) ----
class SecurityError(LiquidGlassError):
    pass


class InvalidURLError(SecurityError):
    def __init__(self, reason: str = "Malformed URL", **ctx: Any):
        super().__init__("invalid_url", f"Invalid URL: {reason}", severity=Severity.WARN, recoverable=False, context={"reason": reason, **ctx})


class BlockedSchemeError(SecurityError):
    def __init__(self, scheme: str, **ctx: Any):
        super().__init__("blocked_scheme", f"Blocked URL scheme: {scheme}", severity=Severity.WARN, recoverable=False, context={"scheme": scheme, **ctx})


class InsecureConnectionError(SecurityError):
    def __init__(self, scheme: str = "", **ctx: Any):
        super().__init__("insecure_connection", "HTTPS required for all connections", severity=Severity.WARN, recoverable=False, context={"scheme": scheme, **ctx})


class DomainNotAllowedError(SecurityError):
    def __init__(self, domain: str, **ctx: Any):
        super().__init__("domain_not_allowed", f"Domain not in allowlist: {domain}", severity=Severity.WARN, recoverable=False, context={"domain": domain, **ctx})


class UntrustedCertificateError(SecurityError):
    def __init__(self, certificate_id: str, **ctx: Any):
        super().__init__("untrusted_certificate", f"Untrusted certificate: {certificate_id}", severity=Severity.WARN, recoverable=False, context={"certificate_id": certificate_id, **ctx})


class ExpiredSignatureError(SecurityError):
    def __init__(self, **ctx: Any):
        super().__init__("expired_signature", "Module signature has expired", severity=Severity.WARN, recoverable=False, context=ctx)


class UnsupportedAlgorithmError(SecurityError):
    def __init__(self, algorithm: str, **ctx: Any):
        super().__init__("unsupported_algorithm", f"Unsupported signing algorithm: {algorithm}", severity=Severity.WARN, recoverable=False, context={"algorithm": algorithm, **ctx})


class SignatureVerificationFailedError(SecurityError):
    def __init__(self, **ctx: Any):
        super().__init__("signature_verification_failed", "Signature verification failed", severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Module runtime / transport / not-found ----
class ModuleError(LiquidGlassError):
    pass


class NotImplementedModuleError(ModuleError):
    def __init__(self, operation: str = "", **ctx: Any):
        super().__init__("not_implemented", "Not implemented", severity=Severity.WARN, recoverable=False, context={"operation": operation, **ctx})


class ExecutionFailedError(ModuleError):
    def __init__(self, reason: str, **ctx: Any):
        super().__init__("execution_failed", f"Execution failed: {reason}", context={"reason": reason, **ctx})


class InvalidResponseError(ModuleError):
    def __init__(self, message: str, **ctx: Any):
        super().__init__("invalid_response", f"Invalid response: {message}", context={"message": message, **ctx})


class InvalidFormatError(ModuleError):
    def __init__(self, message: str, **ctx: Any):
        super().__init__("invalid_format", f"Invalid format: {message}", severity=Severity.WARN, recoverable=False, context={"message": message, **ctx})


class InitializationError(ModuleError):
    def __init__(self, message: str, **ctx: Any):
        super().__init__("initialization_error", f"Module initialization failed: {message}", recoverable=False, context={"message": message, **ctx})


class ModuleConflictError(ModuleError):
    def __init__(self, module_id: str, owner: str, **ctx: Any):
        super().__init__(
            "module_id_conflict",
            f"Module id '{module_id}' is already used by a {owner} module",
            severity=Severity.WARN,
            recoverable=False,
            context={"module_id": module_id, "owner": owner, **ctx},
        )


class NetworkError(ModuleError):
    def __init__(self, message: str, **ctx: Any):
        super().__init__("network_error", f"Network error: {message}", severity=Severity.WARN, context={"message": message, **ctx})


class RateLimitedError(ModuleError):
    def __init__(self, retry_after: Optional[float] = None, **ctx: Any):
        if retry_after is not None:
            msg = f"Rate limited. Retry after {int(retry_after)} seconds"
        else:
            msg = "Rate limited. Please try again later"
        super().__init__("rate_limited", msg, severity=Severity.WARN, context={"retry_after": retry_after, **ctx})

    @property
    def retry_after(self) -> Optional[float]:
        return self.context.get("retry_after")


class ModuleDisabledError(ModuleError):
    def __init__(self, module_id: str = "", **ctx: Any):
        super().__init__("module_disabled", "Module is disabled", severity=Severity.WARN, recoverable=False, context={"module_id": module_id, **ctx})


class TrackNotFoundError(ModuleError):
    def __init__(self, track_id: str, **ctx: Any):
        super().__init__("track_not_found", f"Track not found: {track_id}", severity=Severity.INFO, recoverable=False, context={"track_id": track_id, **ctx})


class AlbumNotFoundError(ModuleError):
    def __init__(self, album_id: str, **ctx: Any):
        super().__init__("album_not_found", f"Album not found: {album_id}", severity=Severity.INFO, recoverable=False, context={"album_id": album_id, **ctx})


class ArtistNotFoundError(ModuleError):
    def __init__(self, artist_id: str, **ctx: Any):
        super().__init__("artist_not_found", f"Artist not found: {artist_id}", severity=Severity.INFO, recoverable=False, context={"artist_id": artist_id, **ctx})


class StreamNotAvailableError(ModuleError):
    def __init__(self, **ctx: Any):
        super().__init__("stream_not_available", "Stream not available", severity=Severity.WARN, recoverable=False, context=ctx)


class SecurityViolationError(ModuleError):
    def __init__(self, reason: str, **ctx: Any):
        super().__init__("security_violation", f"Security violation: {reason}", severity=Severity.WARN, recoverable=False, context={"reason": reason, **ctx})


class NotAuthenticatedError(ModuleError):
    def __init__(self, **ctx: Any):
        super().__init__("not_authenticated", "Authentication required", severity=Severity.WARN, context=ctx)


class ConfigError(LiquidGlassError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)
