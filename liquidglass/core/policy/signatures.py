from __future__ import annotations

import datetime as dt
import hashlib
import hmac
import logging
from typing import Iterable, Optional

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from liquidglass.core.config.models import DEFAULT_SUPPORTED_ALGORITHMS
from liquidglass.core.errors import (
    ExpiredSignatureError,
    InvalidFormatError,
    UnsupportedAlgorithmError,
    UntrustedCertificateError,
)
from liquidglass.core.policy.models import CertificateKind, ModuleSignature, TrustedCertificate
from liquidglass.core.policy.store import PolicyStore


def load_public_key(material: bytes):
    try:
        key = serialization.load_pem_public_key(bytes(material))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidFormatError("certificate material is not a PEM public key") from e
    if not isinstance(key, (RSAPublicKey, Ed25519PublicKey)):
        raise InvalidFormatError("only RSA and Ed25519 public keys are supported")
    return key


class SignatureVerifier:
    """
    Checks run in order: certificate trusted, signature age, algorithm.

    Opaque certificates keep the legacy acceptance rule (non-empty signature
    data) unless a SHA256 digest can be compared against a payload.
    Public-key certificates get real RSA/Ed25519 verification and require the
    signed payload; a bare SHA256 digest never satisfies them.
    """

    def __init__(
        self,
        store: PolicyStore,
        *,
        supported_algorithms: Optional[Iterable[str]] = None,
        max_age_days: int = 365,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.supported_algorithms = tuple(supported_algorithms or DEFAULT_SUPPORTED_ALGORITHMS)
        self.max_age = dt.timedelta(days=int(max_age_days))
        self.logger = logger or logging.getLogger("liquidglass.signatures")

    def verify_module_signature(self, signature: ModuleSignature, payload: Optional[bytes] = None) -> bool:
        cert = self.store.get_trusted_certificate(signature.certificate_id)
        if cert is None:
            raise UntrustedCertificateError(signature.certificate_id)

        now = dt.datetime.fromtimestamp(self.store.now(), tz=dt.timezone.utc)
        if now - signature.timestamp > self.max_age:
            raise ExpiredSignatureError(certificate_id=signature.certificate_id)

        if signature.algorithm not in self.supported_algorithms:
            raise UnsupportedAlgorithmError(signature.algorithm)

        if cert.kind == CertificateKind.OPAQUE:
            if signature.algorithm == "SHA256" and payload is not None:
                return hmac.compare_digest(bytes(signature.data), hashlib.sha256(payload).digest())
            return self._legacy_check(cert, signature)
        return self._verify_with_public_key(cert, signature, payload)

    def _legacy_check(self, cert: TrustedCertificate, signature: ModuleSignature) -> bool:
        # Digest of the certificate is computed but never compared; acceptance
        # only requires non-empty signature bytes.
        hashlib.sha256(cert.material).digest()
        return len(signature.data) > 0

    def _verify_with_public_key(self, cert: TrustedCertificate, signature: ModuleSignature, payload: Optional[bytes]) -> bool:
        if payload is None:
            self.logger.warning("Signature from %s has no payload to verify against", cert.certificate_id)
            return False
        try:
            key = load_public_key(cert.material)
        except InvalidFormatError as e:
            self.logger.error("Trusted certificate %s is unusable: %s", cert.certificate_id, e)
            return False

        try:
            if signature.algorithm == "SHA256withRSA" and isinstance(key, RSAPublicKey):
                key.verify(bytes(signature.data), payload, padding.PKCS1v15(), hashes.SHA256())
                return True
            if signature.algorithm == "Ed25519" and isinstance(key, Ed25519PublicKey):
                key.verify(bytes(signature.data), payload)
                return True
        except InvalidSignature:
            return False

        self.logger.warning(
            "Algorithm %s does not match key type of certificate %s", signature.algorithm, cert.certificate_id
        )
        return False
