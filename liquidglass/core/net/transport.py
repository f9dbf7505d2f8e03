from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import requests

from liquidglass.core.errors import NetworkError
from liquidglass.core.redaction import mask_url


DEFAULT_HEADERS = {"Accept": "application/json", "User-Agent": "LiquidGlass/1.0"}


@dataclass(frozen=True)
class HttpResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= int(self.status) < 300

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for k, v in self.headers.items():
            if k.lower() == wanted:
                return v
        return None

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.text())


class Transport:
    """Outbound HTTP seam. Implementations raise NetworkError on transport failure."""

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Union[bytes, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        raise NotImplementedError

    def close(self) -> None:
        return None


class HttpTransport(Transport):
    def __init__(
        self,
        *,
        timeout_seconds: float = 30.0,
        default_headers: Optional[Dict[str, str]] = None,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.timeout_seconds = float(timeout_seconds)
        self.default_headers = dict(DEFAULT_HEADERS)
        self.default_headers.update(default_headers or {})
        if user_agent:
            self.default_headers["User-Agent"] = user_agent
        self.logger = logger or logging.getLogger("liquidglass.net")
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg, *, logger: Optional[logging.Logger] = None) -> "HttpTransport":
        return cls(timeout_seconds=cfg.timeout_seconds, default_headers=cfg.default_headers, user_agent=cfg.user_agent, logger=logger)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Union[bytes, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        merged = dict(self.default_headers)
        merged.update(headers or {})
        data = body.encode("utf-8") if isinstance(body, str) else body
        try:
            r = self._session.request(
                method.upper(),
                url,
                headers=merged,
                data=data,
                timeout=self.timeout_seconds if timeout is None else float(timeout),
            )
        except requests.Timeout as e:
            self.logger.warning("HTTP %s %s timed out", method.upper(), mask_url(url))
            raise NetworkError("Request timed out", url=mask_url(url)) from e
        except requests.RequestException as e:
            self.logger.warning("HTTP %s %s failed: %s", method.upper(), mask_url(url), type(e).__name__)
            raise NetworkError(str(e) or type(e).__name__, url=mask_url(url)) from e
        self.logger.debug("HTTP %s %s -> %s", method.upper(), mask_url(url), r.status_code)
        return HttpResponse(status=int(r.status_code), headers=dict(r.headers), body=bytes(r.content or b""))

    def close(self) -> None:
        self._session.close()
