from __future__ import annotations

import datetime as dt
import hashlib
from typing import Any, Dict, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from liquidglass.core.errors import InvalidFormatError, UnsupportedAlgorithmError
from liquidglass.core.modules.models import ModuleManifest
from liquidglass.core.policy.models import ModuleSignature, utcnow


def sign_payload(payload: bytes, *, algorithm: str, private_key_pem: Optional[bytes] = None) -> bytes:
    """Produce signature bytes that SignatureVerifier accepts for `algorithm`."""
    if algorithm == "SHA256":
        return hashlib.sha256(payload).digest()
    if private_key_pem is None:
        raise InvalidFormatError(f"{algorithm} signing needs a private key")
    try:
        key = serialization.load_pem_private_key(bytes(private_key_pem), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidFormatError("private key is not an unencrypted PEM key") from e

    if algorithm == "SHA256withRSA" and isinstance(key, RSAPrivateKey):
        return key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
    if algorithm == "Ed25519" and isinstance(key, Ed25519PrivateKey):
        return key.sign(payload)
    raise UnsupportedAlgorithmError(algorithm, key_type=type(key).__name__)


def sign_manifest(
    raw: Dict[str, Any],
    *,
    certificate_id: str,
    algorithm: str = "SHA256withRSA",
    private_key_pem: Optional[bytes] = None,
    timestamp: Optional[dt.datetime] = None,
) -> ModuleManifest:
    """
    Validate a manifest dict and attach a fresh signature over its canonical
    payload. Any signature already present in `raw` is replaced.
    """
    body = dict(raw)
    # placeholder so the model validates; it is excluded from the payload
    body["signature"] = {"data": b"\x00", "certificateId": certificate_id, "algorithm": algorithm}
    unsigned = ModuleManifest.model_validate(body)
    data = sign_payload(unsigned.signing_payload(), algorithm=algorithm, private_key_pem=private_key_pem)
    sig = ModuleSignature(
        data=data,
        algorithm=algorithm,
        certificate_id=certificate_id,
        timestamp=timestamp or utcnow(),
    )
    return unsigned.model_copy(update={"signature": sig})
