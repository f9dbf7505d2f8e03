from liquidglass.core.policy.models import (
    BUILTIN_CERTIFICATE_ID,
    CertificateKind,
    ModuleSignature,
    PolicyViolation,
    RateLimitState,
    TrustedCertificate,
)
from liquidglass.core.policy.signatures import SignatureVerifier, load_public_key
from liquidglass.core.policy.store import PolicyStore
from liquidglass.core.policy.validator import URLValidator, sanitize_url

__all__ = [
    "BUILTIN_CERTIFICATE_ID",
    "CertificateKind",
    "ModuleSignature",
    "PolicyStore",
    "PolicyViolation",
    "RateLimitState",
    "SignatureVerifier",
    "TrustedCertificate",
    "URLValidator",
    "load_public_key",
    "sanitize_url",
]
