from __future__ import annotations

import base64
import binascii
import json
import re
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from liquidglass.core.errors import AlbumNotFoundError, InvalidResponseError, StreamNotAvailableError
from liquidglass.core.modules.base import BaseModule, ModuleContext
from liquidglass.core.modules.models import (
    Album,
    AudioCodec,
    AudioContainer,
    AudioQuality,
    ModuleOrigin,
    SearchResults,
    StreamInfo,
    Track,
)


MODULE_ID = "im-miserable"
BASE_URL = "https://tidal.kinoplus.online"
COVER_BASE_URL = "https://resources.tidal.com/images"
STREAM_TTL_SECONDS = 3600

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

_QUALITY_FROM_API = {
    "MASTER": AudioQuality.MASTER,
    "HI_RES": AudioQuality.MASTER,
    "HI_RES_LOSSLESS": AudioQuality.HI_RES,
    "LOSSLESS": AudioQuality.LOSSLESS,
    "HIGH": AudioQuality.HIGH,
    "LOW": AudioQuality.LOW,
}

_CODEC_FROM_API = {
    "FLAC": AudioCodec.FLAC,
    "ALAC": AudioCodec.ALAC,
    "AAC": AudioCodec.AAC,
    "MQA": AudioCodec.MQA,
}


def parse_quality(value: Optional[str]) -> AudioQuality:
    return _QUALITY_FROM_API.get(str(value or "").upper(), AudioQuality.LOSSLESS)


def parse_codec(value: Optional[str]) -> AudioCodec:
    return _CODEC_FROM_API.get(str(value or "").upper(), AudioCodec.FLAC)


def cover_url(cover: Optional[str]) -> Optional[str]:
    """Tidal cover UUIDs map onto the image CDN; anything else passes through."""
    if not cover:
        return None
    if cover.startswith("http"):
        return cover
    if not _UUID_RE.match(cover):
        return cover
    return f"{COVER_BASE_URL}/{cover.replace('-', '/')}/640x640.jpg"


def stream_url_from_manifest(manifest: str) -> Optional[str]:
    """Manifest is base64 JSON carrying a `urls` list; the first entry is used."""
    try:
        decoded = json.loads(base64.b64decode(manifest, validate=False).decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeDecodeError):
        return None
    if not isinstance(decoded, dict):
        return None
    urls = decoded.get("urls")
    if not isinstance(urls, list) or not urls or not isinstance(urls[0], str):
        return None
    return urls[0]


def _opt_str(v: Any) -> Optional[str]:
    return None if v is None else str(v)


class ImMiserableModule(BaseModule):
    """Built-in HiFi API module for the kinoplus Tidal instance."""

    id = MODULE_ID
    name = "Im Miserable"
    version = "1.0.0"
    description = "KINOPLUS TIDAL INSTANCE, LOSSLESS STREAMING"
    labels = ["High Quality", "Lossless"]
    allowed_domains = ["tidal.kinoplus.online", "resources.tidal.com"]
    requires_auth = False
    origin = ModuleOrigin.BUILTIN

    def __init__(self, context: ModuleContext, *, base_url: str = BASE_URL, time_fn: Callable[[], float] = time.time):
        super().__init__(context)
        self.base_url = base_url.rstrip("/")
        self._time = time_fn

    def _track_from_item(self, item: Dict[str, Any]) -> Track:
        artist = item.get("artist") if isinstance(item.get("artist"), dict) else None
        artists = [a for a in item.get("artists") or [] if isinstance(a, dict)]
        first_artist = artist or (artists[0] if artists else None)
        album = item.get("album") if isinstance(item.get("album"), dict) else {}
        return Track(
            id=str(item.get("id")),
            title=str(item.get("title") or ""),
            artist_name=str((first_artist or {}).get("name") or "Unknown Artist"),
            artist_id=_opt_str((first_artist or {}).get("id")),
            album=str(album.get("title") or "Unknown Album"),
            album_id=_opt_str(album.get("id")),
            album_cover=cover_url(album.get("cover")),
            track_number=item.get("trackNumber"),
            duration=float(item.get("duration") or 0),
            quality=parse_quality(item.get("audioQuality")),
            module_id=self.id,
        )

    def search_tracks(self, query: str, limit: int = 25) -> SearchResults:
        url = f"{self.base_url}/search/?s={quote(query, safe='')}&limit={int(limit)}"
        payload = self.fetch_json(url)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise InvalidResponseError("search response has no items", module_id=self.id)
        tracks: List[Track] = [self._track_from_item(it) for it in data["items"] if isinstance(it, dict) and "id" in it]
        total = data.get("totalNumberOfItems")
        return SearchResults(tracks=tracks, total_tracks=int(total) if isinstance(total, int) else len(tracks))

    def get_track_stream(self, track_id: str, preferred_quality: AudioQuality = AudioQuality.LOSSLESS) -> StreamInfo:
        url = f"{self.base_url}/track/?id={quote(str(track_id), safe='')}&quality={preferred_quality.value}"
        payload = self.fetch_json(url)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise InvalidResponseError("track response has no data", module_id=self.id)
        manifest = data.get("manifest")
        if not manifest:
            raise StreamNotAvailableError(module_id=self.id, track_id=str(track_id))
        stream_url = stream_url_from_manifest(str(manifest))
        if stream_url is None:
            raise InvalidResponseError("Failed to decode manifest", module_id=self.id)
        return StreamInfo(
            url=stream_url,
            codec=parse_codec(data.get("codec")),
            container=AudioContainer.FLAC,
            sample_rate=int(data.get("sampleRate") or 44100),
            bit_depth=int(data.get("bitDepth") or 16),
            quality=parse_quality(data.get("audioQuality")),
            expiry=float(self._time()) + STREAM_TTL_SECONDS,
            track_id=str(track_id),
        )

    def get_album(self, album_id: str) -> Album:
        raise AlbumNotFoundError(album_id, module_id=self.id)


def create(context: ModuleContext) -> ImMiserableModule:
    return ImMiserableModule(context)
