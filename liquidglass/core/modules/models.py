from __future__ import annotations

import datetime as dt
import json
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from liquidglass.core.policy.models import ModuleSignature


class AudioQuality(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    LOSSLESS = "LOSSLESS"
    HI_RES = "HI_RES"
    MASTER = "MASTER"

    @property
    def display_name(self) -> str:
        return _QUALITY_DISPLAY[self]

    @property
    def badge(self) -> str:
        return _QUALITY_BADGE[self]

    @property
    def priority(self) -> int:
        return list(AudioQuality).index(self)

    @classmethod
    def parse(cls, value: Any, default: Optional["AudioQuality"] = None) -> "AudioQuality":
        fallback = cls.LOSSLESS if default is None else default
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return fallback


_QUALITY_DISPLAY = {
    AudioQuality.LOW: "Low",
    AudioQuality.NORMAL: "Normal",
    AudioQuality.HIGH: "High",
    AudioQuality.LOSSLESS: "Lossless",
    AudioQuality.HI_RES: "Hi-Res",
    AudioQuality.MASTER: "Master",
}

_QUALITY_BADGE = {
    AudioQuality.LOW: "AAC",
    AudioQuality.NORMAL: "AAC",
    AudioQuality.HIGH: "AAC 320",
    AudioQuality.LOSSLESS: "FLAC",
    AudioQuality.HI_RES: "Hi-Res",
    AudioQuality.MASTER: "Master",
}


class AudioCodec(str, Enum):
    AAC = "AAC"
    ALAC = "ALAC"
    FLAC = "FLAC"
    MQA = "MQA"
    MP3 = "MP3"
    OPUS = "OPUS"
    UNKNOWN = "UNKNOWN"

    @property
    def lossless(self) -> bool:
        return self in (AudioCodec.ALAC, AudioCodec.FLAC, AudioCodec.MQA)


class AudioContainer(str, Enum):
    MP4 = "MP4"
    M4A = "M4A"
    FLAC = "FLAC"
    WAV = "WAV"
    OGG = "OGG"
    UNKNOWN = "UNKNOWN"


class ManifestType(str, Enum):
    DIRECT = "DIRECT"
    HLS = "HLS"
    DASH = "DASH"


class ModuleOrigin(str, Enum):
    BUILTIN = "builtin"
    DYNAMIC = "dynamic"
    REMOTE = "remote"


class ModulePermission(str, Enum):
    NETWORK = "NETWORK"
    STORAGE = "STORAGE"
    NOTIFICATIONS = "NOTIFICATIONS"
    BACKGROUND_AUDIO = "BACKGROUND_AUDIO"


# ---- catalog ----
class Artist(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    image_url: Optional[str] = None
    biography: Optional[str] = None
    genres: List[str] = Field(default_factory=list)


class Track(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    artist: Optional[Artist] = None
    artist_name: str
    artist_id: Optional[str] = None
    album: Optional[str] = None
    album_id: Optional[str] = None
    album_cover: Optional[str] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    duration: float = 0.0
    quality: AudioQuality = AudioQuality.LOSSLESS
    explicit: bool = False
    module_id: str

    @property
    def formatted_duration(self) -> str:
        total = int(self.duration)
        return f"{total // 60}:{total % 60:02d}"


class Album(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    artist: Optional[Artist] = None
    artist_name: str
    cover_url: Optional[str] = None
    release_date: Optional[dt.date] = None
    track_count: int = 0
    duration: float = 0.0
    quality: AudioQuality = AudioQuality.LOSSLESS
    genres: List[str] = Field(default_factory=list)
    tracks: Optional[List[Track]] = None


class StreamInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str
    codec: AudioCodec = AudioCodec.FLAC
    container: AudioContainer = AudioContainer.FLAC
    sample_rate: int = 44100
    bit_depth: int = 16
    bitrate: Optional[int] = None
    quality: AudioQuality = AudioQuality.LOSSLESS
    # epoch seconds
    expiry: Optional[float] = None
    manifest_type: ManifestType = ManifestType.DIRECT
    track_id: str

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expiry is None:
            return False
        current = time.time() if now is None else float(now)
        return current > self.expiry

    @property
    def quality_badge(self) -> str:
        if self.codec.lossless:
            rate = f"{self.sample_rate // 1000}kHz" if self.sample_rate >= 1000 else f"{self.sample_rate}Hz"
            return f"{self.bit_depth}-bit/{rate} {self.codec.value}"
        return f"{self.bitrate or 0}kbps {self.codec.value}"


class SearchResults(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tracks: List[Track] = Field(default_factory=list)
    albums: List[Album] = Field(default_factory=list)
    artists: List[Artist] = Field(default_factory=list)
    total_tracks: int = 0
    total_albums: int = 0
    total_artists: int = 0

    @classmethod
    def empty(cls) -> "SearchResults":
        return cls()


# ---- module metadata ----
def _dedupe_domains(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        v = [v]
    out: List[str] = []
    for item in v:
        s = str(item or "").strip().lower()
        if s and s not in out:
            out.append(s)
    return out


class ModuleDescriptor(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    version: str = "1.0.0"
    description: str = ""
    labels: List[str] = Field(default_factory=list)
    icon_url: Optional[str] = None
    requires_auth: bool = False
    is_enabled: bool = True
    allowed_domains: List[str] = Field(default_factory=list)
    signature: Optional[ModuleSignature] = None
    origin: ModuleOrigin = ModuleOrigin.BUILTIN

    @field_validator("id", "name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = str(v).strip()
        if not v:
            raise ValueError("must be non-empty")
        return v

    @field_validator("allowed_domains", mode="before")
    @classmethod
    def _norm_domains(cls, v: Any) -> List[str]:
        return _dedupe_domains(v)


class ModuleInfo(BaseModel):
    """Read-only projection for list/detail screens."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    name: str
    version: str
    description: str
    labels: List[str] = Field(default_factory=list)
    icon_url: Optional[str] = None
    is_enabled: bool
    requires_auth: bool
    is_authenticated: bool
    allowed_domains: List[str] = Field(default_factory=list)
    origin: ModuleOrigin
    signed: bool = False
    last_error: Optional[str] = None


class ModuleManifest(BaseModel):
    """
    Remote manifest as served from an approved URL. Field names accept the
    camelCase spelling used on the wire.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    version: str
    description: str = ""
    author: str = ""
    homepage: Optional[str] = None
    download_url: str = Field(alias="downloadURL")
    checksum: str = ""
    signature: ModuleSignature
    min_app_version: str = Field(default="1.0.0", alias="minAppVersion")
    allowed_domains: List[str] = Field(default_factory=list, alias="allowedDomains")
    permissions: List[ModulePermission] = Field(default_factory=list)
    updated_at: dt.datetime = Field(alias="updatedAt")

    @field_validator("allowed_domains", mode="before")
    @classmethod
    def _norm_domains(cls, v: Any) -> List[str]:
        return _dedupe_domains(v)

    def signing_payload(self) -> bytes:
        """Canonical bytes covered by the signature: every field except the signature itself."""
        body: Dict[str, Any] = self.model_dump(mode="json", by_alias=True, exclude={"signature"})
        return json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
