from liquidglass.core.modules.base import BaseModule, ModuleContext, MusicModule
from liquidglass.core.modules.models import (
    Album,
    Artist,
    AudioCodec,
    AudioContainer,
    AudioQuality,
    ManifestType,
    ModuleDescriptor,
    ModuleInfo,
    ModuleManifest,
    ModuleOrigin,
    SearchResults,
    StreamInfo,
    Track,
)
from liquidglass.core.modules.registry import ModuleRegistry
from liquidglass.core.modules.script_host import FetchError, FetchResponse, ScriptModule

__all__ = [
    "Album",
    "Artist",
    "AudioCodec",
    "AudioContainer",
    "AudioQuality",
    "BaseModule",
    "FetchError",
    "FetchResponse",
    "ManifestType",
    "ModuleContext",
    "ModuleDescriptor",
    "ModuleInfo",
    "ModuleManifest",
    "ModuleOrigin",
    "ModuleRegistry",
    "MusicModule",
    "ScriptModule",
    "SearchResults",
    "StreamInfo",
    "Track",
]
