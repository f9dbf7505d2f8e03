from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from liquidglass.core.errors import InvalidFormatError, NetworkError
from liquidglass.core.modules.models import ModuleManifest
from liquidglass.core.net.transport import Transport
from liquidglass.core.policy.signatures import SignatureVerifier
from liquidglass.core.policy.validator import URLValidator, sanitize_url


MANIFEST_POLICY_ID = "remote-manifests"


class ManifestLoader:
    """
    Fetches remote module manifests and checks their signature over the
    canonical manifest bytes. Instantiating the module itself is deferred;
    manifests are kept for display only.
    """

    def __init__(
        self,
        *,
        transport: Transport,
        validator: URLValidator,
        verifier: SignatureVerifier,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.validator = validator
        self.verifier = verifier
        self.logger = logger or logging.getLogger("liquidglass.manifests")

    def fetch(self, url: str) -> ModuleManifest:
        self.validator.validate_module_url(url, MANIFEST_POLICY_ID)
        resp = self.transport.request("GET", url)
        if not resp.ok:
            raise NetworkError("Failed to fetch manifest", status=resp.status, url=sanitize_url(url))
        try:
            manifest = ModuleManifest.model_validate_json(resp.body)
        except ValidationError as e:
            raise InvalidFormatError(f"manifest rejected: {e.error_count()} validation error(s)") from e
        self.logger.info("Fetched manifest %s %s from %s", manifest.id, manifest.version, sanitize_url(url))
        return manifest

    def verify(self, manifest: ModuleManifest) -> bool:
        """True when the signature checks out. Trust failures raise SecurityError subclasses."""
        return self.verifier.verify_module_signature(manifest.signature, manifest.signing_payload())
