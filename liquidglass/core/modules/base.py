from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from liquidglass.core.errors import (
    ArtistNotFoundError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
    SecurityError,
    StreamNotAvailableError,
)
from liquidglass.core.modules.models import (
    Album,
    Artist,
    AudioQuality,
    ModuleDescriptor,
    ModuleOrigin,
    SearchResults,
    StreamInfo,
)
from liquidglass.core.net.transport import HttpResponse, Transport
from liquidglass.core.network_logger import NetworkLogger
from liquidglass.core.policy.models import ModuleSignature
from liquidglass.core.policy.validator import URLValidator


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return max(0.0, float(str(value).strip()))
    except ValueError:
        return None


class ModuleContext:
    """
    Per-module handle onto the network policy. Every outbound request made on
    behalf of a module goes through request(), which validates the URL first.
    """

    def __init__(
        self,
        module_id: str,
        *,
        validator: URLValidator,
        transport: Transport,
        network_logger: Optional[NetworkLogger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.module_id = module_id
        self.validator = validator
        self.transport = transport
        self.network_logger = network_logger
        self.logger = logger or logging.getLogger(f"liquidglass.modules.{module_id}")

    def validate_url(self, url: str) -> None:
        try:
            self.validator.validate_module_url(url, self.module_id)
        except SecurityError as e:
            if self.network_logger is not None:
                self.network_logger.log_policy_violation(self.module_id, str(e))
            raise

    def log_request(self, url: str, method: str, duration: float, status_code: Optional[int]) -> None:
        if self.network_logger is not None:
            self.network_logger.log_request(self.module_id, url, method, duration, status_code)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        self.validate_url(url)
        started = time.monotonic()
        status: Optional[int] = None
        try:
            resp = self.transport.request(method, url, headers=headers, body=body, timeout=timeout)
            status = resp.status
            return resp
        finally:
            self.log_request(url, method, time.monotonic() - started, status)


class MusicModule(ABC):
    """
    Contract for a music source. Concrete modules implement search, album and
    stream resolution; everything else has a default.
    """

    id: str = ""
    name: str = ""
    version: str = "1.0.0"
    description: str = ""
    labels: List[str] = []
    icon_url: Optional[str] = None
    requires_auth: bool = False
    allowed_domains: List[str] = []
    signature: Optional[ModuleSignature] = None
    origin: ModuleOrigin = ModuleOrigin.BUILTIN

    @abstractmethod
    def search_tracks(self, query: str, limit: int = 25) -> SearchResults:
        raise NotImplementedError

    @abstractmethod
    def get_album(self, album_id: str) -> Album:
        raise NotImplementedError

    @abstractmethod
    def get_track_stream(self, track_id: str, preferred_quality: AudioQuality = AudioQuality.LOSSLESS) -> StreamInfo:
        raise NotImplementedError

    def get_artist(self, artist_id: str) -> Artist:
        raise ArtistNotFoundError(artist_id, module_id=self.id)

    def is_authenticated(self) -> bool:
        return not self.requires_auth

    def can_download(self, track_id: str) -> bool:
        return False

    def get_download_url(self, track_id: str, quality: AudioQuality = AudioQuality.LOSSLESS) -> str:
        raise StreamNotAvailableError(module_id=self.id, track_id=track_id)

    def authenticate(self) -> Optional[str]:
        return None

    def handle_auth_callback(self, callback_url: str) -> None:
        return None

    def sign_out(self) -> None:
        return None

    def signing_payload(self) -> Optional[bytes]:
        """Bytes covered by `signature`, when the module can provide them."""
        return None

    def close(self) -> None:
        return None

    def descriptor(self, *, is_enabled: bool = True) -> ModuleDescriptor:
        return ModuleDescriptor(
            id=self.id,
            name=self.name,
            version=self.version,
            description=self.description,
            labels=list(self.labels),
            icon_url=self.icon_url,
            requires_auth=self.requires_auth,
            is_enabled=is_enabled,
            allowed_domains=list(self.allowed_domains),
            signature=self.signature,
            origin=self.origin,
        )


class BaseModule(MusicModule):
    """Built-in module helper: JSON over the policed context."""

    def __init__(self, context: ModuleContext):
        self.context = context

    @property
    def logger(self) -> logging.Logger:
        return self.context.logger

    def fetch_json(self, url: str, *, headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None) -> Any:
        resp = self.context.request("GET", url, headers=headers, timeout=timeout)
        if resp.status == 429:
            raise RateLimitedError(parse_retry_after(resp.header("Retry-After")), module_id=self.id)
        if not resp.ok:
            raise NetworkError(f"HTTP {resp.status}", module_id=self.id, status=resp.status)
        try:
            return resp.json()
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidResponseError("Response is not valid JSON", module_id=self.id) from e
