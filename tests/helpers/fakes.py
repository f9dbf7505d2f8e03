from __future__ import annotations

import json
import threading
import time as _time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from liquidglass.core.errors import RateLimitedError
from liquidglass.core.modules.base import MusicModule
from liquidglass.core.modules.models import Album, AudioQuality, ModuleOrigin, SearchResults, StreamInfo, Track
from liquidglass.core.net.transport import HttpResponse, Transport


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self._t = float(start)

    def time(self) -> float:
        return self._t

    def advance(self, seconds: float) -> None:
        self._t += float(seconds)


def json_response(obj: Any, status: int = 200, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
    return HttpResponse(status=status, headers=dict(headers or {}), body=json.dumps(obj).encode("utf-8"))


Route = Union[HttpResponse, Callable[[str, str], HttpResponse], Exception]


@dataclass
class FakeTransport(Transport):
    """
    Routes by exact URL first, then by longest matching prefix. Unrouted URLs
    get a 404. `delay` sleeps before answering, on the calling thread.
    """

    routes: Dict[str, Route] = field(default_factory=dict)
    delay: float = 0.0
    calls: List[Dict[str, Any]] = field(default_factory=list)
    closed: bool = False

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def route(self, url: str, response: Route) -> None:
        self.routes[url] = response

    def _find(self, url: str) -> Optional[Route]:
        if url in self.routes:
            return self.routes[url]
        best = None
        for prefix in self.routes:
            if url.startswith(prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        return self.routes[best] if best is not None else None

    def request(self, method, url, *, headers=None, body=None, timeout=None):  # noqa: ANN001
        with self._lock:
            self.calls.append({"method": method, "url": url, "headers": dict(headers or {}), "body": body})
        if self.delay:
            _time.sleep(self.delay)
        found = self._find(url)
        if found is None:
            return HttpResponse(status=404, body=b"not found")
        if isinstance(found, Exception):
            raise found
        if callable(found):
            return found(method, url)
        return found

    def close(self) -> None:
        self.closed = True

    @property
    def urls(self) -> List[str]:
        with self._lock:
            return [c["url"] for c in self.calls]


class StubModule(MusicModule):
    """In-process module with canned results, used to drive the registry."""

    def __init__(
        self,
        module_id: str = "stub",
        *,
        name: str = "Stub",
        titles: Optional[List[str]] = None,
        delay: float = 0.0,
        fail: Optional[Exception] = None,
        allowed_domains: Optional[List[str]] = None,
        origin: ModuleOrigin = ModuleOrigin.BUILTIN,
    ):
        self.id = module_id
        self.name = name
        self.titles = list(titles if titles is not None else ["Song A", "Song B"])
        self.delay = float(delay)
        self.fail = fail
        self.allowed_domains = list(allowed_domains or [])
        self.origin = origin
        self.search_calls = 0
        self.closed = False

    def search_tracks(self, query: str, limit: int = 25) -> SearchResults:
        self.search_calls += 1
        if self.delay:
            _time.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        tracks = [
            Track(id=f"{self.id}-{i}", title=t, artist_name="Artist", duration=185, module_id=self.id)
            for i, t in enumerate(self.titles[:limit])
        ]
        return SearchResults(tracks=tracks, total_tracks=len(tracks))

    def get_album(self, album_id: str) -> Album:
        return Album(id=album_id, title="Album", artist_name="Artist")

    def get_track_stream(self, track_id: str, preferred_quality: AudioQuality = AudioQuality.LOSSLESS) -> StreamInfo:
        if self.fail is not None:
            raise self.fail
        return StreamInfo(url=f"https://cdn.example.com/{track_id}.flac", quality=preferred_quality, track_id=track_id)

    def close(self) -> None:
        self.closed = True


class RateLimitedModule(StubModule):
    def __init__(self, module_id: str = "limited", retry_after: Optional[float] = 30.0, **kwargs: Any):
        super().__init__(module_id, fail=RateLimitedError(retry_after, module_id=module_id), **kwargs)


def stub_factory(module: MusicModule) -> Callable[..., MusicModule]:
    def factory(_ctx):  # noqa: ANN001
        return module

    return factory


class CaptureHandler:
    def __init__(self) -> None:
        self.events: List[Any] = []

    def __call__(self, ev) -> None:  # noqa: ANN001
        self.events.append(ev)

    @property
    def types(self) -> List[str]:
        return [e.event_type for e in self.events]
