from __future__ import annotations

import asyncio
import base64
import binascii
import concurrent.futures
import functools
import inspect
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

from liquidglass.core.errors import (
    ExecutionFailedError,
    InitializationError,
    InvalidResponseError,
    LiquidGlassError,
    NetworkError,
    NotImplementedModuleError,
    RateLimitedError,
    SecurityError,
)
from liquidglass.core.modules.base import ModuleContext, MusicModule, parse_retry_after
from liquidglass.core.modules.models import (
    Album,
    Artist,
    AudioCodec,
    AudioContainer,
    AudioQuality,
    ManifestType,
    ModuleOrigin,
    SearchResults,
    StreamInfo,
    Track,
)
from liquidglass.core.modules.sandbox_guard import SAFE_BUILTINS, check_source, meta_str_list, read_module_meta
from liquidglass.core.net.transport import HttpResponse


# Guest entry points, first match wins.
SEARCH_NAMES = ("search_tracks", "searchTracks")
STREAM_NAMES = ("get_track_stream", "getTrackStream", "getTrackStreamUrl")
ALBUM_NAMES = ("get_album", "getAlbum")
ARTIST_NAMES = ("get_artist", "getArtist")


class FetchError(Exception):
    """Raised inside the guest when fetch() is rejected or the transport fails."""


@dataclass(frozen=True)
class FetchResponse:
    status: int
    status_text: str
    body_text: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body_text

    def json(self) -> Any:
        return json.loads(self.body_text)

    @classmethod
    def from_http(cls, resp: HttpResponse) -> "FetchResponse":
        return cls(status=int(resp.status), status_text=str(resp.status), body_text=resp.text(), headers=dict(resp.headers))


class _PendingFetch:
    """What fetch() hands the guest: awaitable, and nothing else."""

    __slots__ = ("_coro",)

    def __init__(self, coro: Coroutine[Any, Any, FetchResponse]):
        self._coro = coro

    def __await__(self):
        return self._coro.__await__()


class _Console:
    def __init__(self, logger: logging.Logger, module_id: str):
        self._logger = logger
        self._module_id = module_id

    def _emit(self, level: int, args: Tuple[Any, ...]) -> None:
        self._logger.log(level, "[%s] %s", self._module_id, " ".join(str(a) for a in args))

    def log(self, *args: Any) -> None:
        self._emit(logging.INFO, args)

    def warn(self, *args: Any) -> None:
        self._emit(logging.WARNING, args)

    def error(self, *args: Any) -> None:
        self._emit(logging.ERROR, args)


def _b64encode(value: Any) -> str:
    raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    return base64.b64encode(raw).decode("ascii")


def _b64decode(value: Any) -> str:
    try:
        return base64.b64decode(str(value)).decode("utf-8", errors="replace")
    except (ValueError, binascii.Error) as e:
        raise ValueError("invalid base64") from e


def _to_float(v: Any, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def _to_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _first_str(item: Dict[str, Any], *keys: str) -> Optional[str]:
    for k in keys:
        v = item.get(k)
        if isinstance(v, str) and v.strip():
            return v
    return None


def _enum_or(enum_cls, value: Any, default):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        return default


class ScriptModule(MusicModule):
    """
    A music module defined by a restricted Python script.

    The script is screened, its MODULE_META read statically, then executed on
    a private asyncio loop thread with a curated builtins table. Every host
    call is a coroutine scheduled onto that loop and awaited from the caller's
    thread with a wall-clock bound; an asyncio.Lock keeps calls on one
    instance strictly sequential. fetch() is the guest's only way out and it
    goes through ModuleContext, so every URL is validated first. The guest
    gets an opaque awaitable back, never the coroutine or the loop behind it.
    """

    origin = ModuleOrigin.DYNAMIC

    def __init__(
        self,
        source_code: str,
        *,
        context_factory: Callable[[str], ModuleContext],
        call_timeout_seconds: float = 30.0,
        max_source_bytes: int = 256_000,
        logger: Optional[logging.Logger] = None,
    ):
        tree = check_source(source_code, max_bytes=max_source_bytes)
        meta = read_module_meta(tree)

        module_id = meta.get("id")
        name = meta.get("name")
        if not isinstance(module_id, str) or not module_id.strip() or not isinstance(name, str) or not name.strip():
            raise InitializationError("Module missing id or name")

        self.id = module_id.strip()
        self.name = name.strip()
        self.version = str(meta.get("version") or "1.0.0")
        self.description = str(meta.get("description") or "")
        self.labels = meta_str_list(meta, "labels")
        self.allowed_domains = meta_str_list(meta, "allowed_domains", "allowedDomains")
        icon = meta.get("icon_url") or meta.get("iconURL")
        self.icon_url = str(icon) if isinstance(icon, str) and icon else None
        self.requires_auth = bool(meta.get("requires_auth", False))
        self.signature = None

        self.source_code = source_code
        self.call_timeout_seconds = float(call_timeout_seconds)
        self.logger = logger or logging.getLogger(f"liquidglass.script.{self.id}")
        self.context = context_factory(self.id)

        self._closed = False
        self._call_lock: Optional[asyncio.Lock] = None
        self._loop = asyncio.new_event_loop()
        self._io = concurrent.futures.ThreadPoolExecutor(max_workers=4, thread_name_prefix=f"script-io-{self.id}")
        self._thread = threading.Thread(target=self._run_loop, name=f"script-{self.id}", daemon=True)
        self._thread.start()

        self._globals: Dict[str, Any] = self._guest_globals()
        code = compile(tree, filename=f"<module:{self.id}>", mode="exec")
        try:
            self._submit(self._exec_top_level(code))
        except LiquidGlassError as e:
            self.close()
            raise InitializationError(e.user_message, module_id=self.id) from e

    # ---- guest environment ----
    def _guest_globals(self) -> Dict[str, Any]:
        return {
            "__builtins__": dict(SAFE_BUILTINS),
            "__name__": f"liquidglass_module_{self.id}",
            "fetch": self._guest_fetch,
            "FetchError": FetchError,
            "console": _Console(self.logger, self.id),
            "json_loads": json.loads,
            "json_dumps": json.dumps,
            "b64encode": _b64encode,
            "b64decode": _b64decode,
            "quote": quote,
            "urlencode": urlencode,
        }

    async def _exec_top_level(self, code) -> None:
        exec(code, self._globals)  # noqa: S102

    def _guest_fetch(self, url: Any, options: Optional[Dict[str, Any]] = None) -> _PendingFetch:
        return _PendingFetch(self._fetch(url, options))

    async def _fetch(self, url: Any, options: Optional[Dict[str, Any]] = None) -> FetchResponse:
        opts = dict(options or {})
        method = str(opts.get("method") or "GET").upper()
        headers = {str(k): str(v) for k, v in dict(opts.get("headers") or {}).items()}
        body = opts.get("body")
        if body is not None and not isinstance(body, (str, bytes)):
            body = json.dumps(body)

        loop = asyncio.get_running_loop()
        call = functools.partial(self.context.request, method, str(url), headers=headers, body=body)
        try:
            resp = await loop.run_in_executor(self._io, call)
        except (SecurityError, NetworkError) as e:
            raise FetchError(e.user_message) from None
        if resp.status == 429:
            raise RateLimitedError(parse_retry_after(resp.header("Retry-After")), module_id=self.id)
        return FetchResponse.from_http(resp)

    # ---- loop plumbing ----
    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    async def _call_guest(self, fn: Callable[..., Any], args: Tuple[Any, ...]) -> Any:
        if self._call_lock is None:
            self._call_lock = asyncio.Lock()
        async with self._call_lock:
            result = fn(*args)
            if inspect.isawaitable(result):
                result = await result
            return result

    def _submit(self, coro: Coroutine[Any, Any, Any]) -> Any:
        if self._closed:
            coro.close()
            raise ExecutionFailedError("Module is closed", module_id=self.id)
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return fut.result(timeout=self.call_timeout_seconds)
        except concurrent.futures.TimeoutError as e:
            fut.cancel()
            raise ExecutionFailedError(f"Timed out after {self.call_timeout_seconds:g}s", module_id=self.id) from e
        except concurrent.futures.CancelledError as e:
            raise ExecutionFailedError("Call was cancelled", module_id=self.id) from e
        except LiquidGlassError:
            raise
        except Exception as e:  # noqa: BLE001
            raise ExecutionFailedError(str(e) or type(e).__name__, module_id=self.id) from e

    def _lookup(self, names: Tuple[str, ...]) -> Optional[Callable[..., Any]]:
        for n in names:
            fn = self._globals.get(n)
            if callable(fn):
                return fn
        return None

    def _invoke(self, names: Tuple[str, ...], *args: Any) -> Any:
        fn = self._lookup(names)
        if fn is None:
            raise NotImplementedModuleError(names[0], module_id=self.id)
        return self._submit(self._call_guest(fn, args))

    def _expect_dict(self, result: Any, what: str) -> Dict[str, Any]:
        if not isinstance(result, dict):
            raise InvalidResponseError(f"{what} did not return an object", module_id=self.id)
        return result

    # ---- result parsing ----
    def _parse_track(self, item: Dict[str, Any]) -> Track:
        artist = item.get("artist")
        if isinstance(artist, dict):
            artist_name = _first_str(artist, "name") or "Unknown"
        else:
            artist_name = _first_str(item, "artist", "artist_name", "artistName") or "Unknown"
        return Track(
            id=str(item.get("id") or uuid.uuid4()),
            title=_first_str(item, "title") or "Unknown",
            artist_name=artist_name,
            artist_id=_first_str(item, "artist_id", "artistId"),
            album=_first_str(item, "album") or "Unknown",
            album_id=_first_str(item, "album_id", "albumId"),
            album_cover=_first_str(item, "album_cover", "albumCover", "artwork", "artworkURL"),
            duration=_to_float(item.get("duration"), 0.0),
            quality=AudioQuality.parse(item.get("quality")),
            explicit=bool(item.get("explicit", False)),
            module_id=self.id,
        )

    def _parse_tracks(self, value: Any) -> List[Track]:
        if not isinstance(value, list):
            return []
        return [self._parse_track(item) for item in value if isinstance(item, dict)]

    # ---- MusicModule ----
    def search_tracks(self, query: str, limit: int = 25) -> SearchResults:
        data = self._expect_dict(self._invoke(SEARCH_NAMES, str(query), int(limit)), "search")
        tracks = self._parse_tracks(data.get("tracks"))
        return SearchResults(tracks=tracks, total_tracks=_to_int(data.get("total_tracks", data.get("totalTracks")), len(tracks)))

    def get_track_stream(self, track_id: str, preferred_quality: AudioQuality = AudioQuality.LOSSLESS) -> StreamInfo:
        quality = AudioQuality.parse(preferred_quality)
        data = self._expect_dict(self._invoke(STREAM_NAMES, str(track_id), quality.value), "stream")
        url = _first_str(data, "url", "stream_url", "streamUrl")
        if url is None:
            raise InvalidResponseError("stream result has no url", module_id=self.id)
        expiry = data.get("expiry")
        return StreamInfo(
            url=url,
            codec=_enum_or(AudioCodec, data.get("codec"), AudioCodec.FLAC),
            container=_enum_or(AudioContainer, data.get("container"), AudioContainer.FLAC),
            sample_rate=_to_int(data.get("sample_rate", data.get("sampleRate")), 44100),
            bit_depth=_to_int(data.get("bit_depth", data.get("bitDepth")), 16),
            bitrate=_to_int(data.get("bitrate"), 0) or None,
            quality=AudioQuality.parse(data.get("quality")),
            expiry=_to_float(expiry) if expiry is not None else None,
            manifest_type=_enum_or(ManifestType, data.get("manifest_type", data.get("manifestType")), ManifestType.DIRECT),
            track_id=str(track_id),
        )

    def get_album(self, album_id: str) -> Album:
        data = self._expect_dict(self._invoke(ALBUM_NAMES, str(album_id)), "album")
        tracks = self._parse_tracks(data.get("tracks"))
        return Album(
            id=str(data.get("id") or album_id),
            title=_first_str(data, "title") or "Unknown",
            artist_name=_first_str(data, "artist", "artist_name", "artistName") or "Unknown",
            cover_url=_first_str(data, "cover_url", "coverURL", "artwork"),
            track_count=_to_int(data.get("track_count", data.get("trackCount")), len(tracks)),
            duration=_to_float(data.get("duration"), 0.0),
            quality=AudioQuality.parse(data.get("quality")),
            tracks=tracks or None,
        )

    def get_artist(self, artist_id: str) -> Artist:
        if self._lookup(ARTIST_NAMES) is None:
            return super().get_artist(artist_id)
        data = self._expect_dict(self._invoke(ARTIST_NAMES, str(artist_id)), "artist")
        return Artist(
            id=str(data.get("id") or artist_id),
            name=_first_str(data, "name") or "Unknown",
            image_url=_first_str(data, "image_url", "imageURL"),
            biography=_first_str(data, "biography"),
            genres=[str(g) for g in data.get("genres") or [] if isinstance(g, str)],
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=2.0)
        self._io.shutdown(wait=False)
        if not self._thread.is_alive():
            self._loop.close()
        else:
            self.logger.warning("Script loop for %s did not stop in time", self.id)

    @property
    def closed(self) -> bool:
        return self._closed
