from __future__ import annotations

import base64
import json

import pytest

from liquidglass.core.errors import (
    AlbumNotFoundError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
    StreamNotAvailableError,
)
from liquidglass.core.modules.base import ModuleContext
from liquidglass.core.modules.models import AudioCodec, AudioQuality
from liquidglass.core.net.transport import HttpResponse
from liquidglass.modules import BUILTIN_FACTORIES
from liquidglass.modules.im_miserable import (
    MODULE_ID,
    ImMiserableModule,
    cover_url,
    parse_codec,
    parse_quality,
    stream_url_from_manifest,
)

from .helpers.fakes import json_response

COVER = "abcdef12-3456-7890-abcd-ef1234567890"


@pytest.fixture
def module(validator, transport, clock, network_logger):
    ctx = ModuleContext(MODULE_ID, validator=validator, transport=transport, network_logger=network_logger)
    return ImMiserableModule(ctx, time_fn=clock.time)


def _manifest(urls) -> str:  # noqa: ANN001
    return base64.b64encode(json.dumps({"mimeType": "audio/flac", "urls": urls}).encode("utf-8")).decode("ascii")


def test_registered_as_builtin_factory():
    assert MODULE_ID in BUILTIN_FACTORIES


def test_search_maps_api_items(module, transport, network_logger):
    transport.route(
        "https://tidal.kinoplus.online/search/",
        json_response(
            {
                "data": {
                    "totalNumberOfItems": 40,
                    "items": [
                        {
                            "id": 123,
                            "title": "Song",
                            "duration": 200,
                            "trackNumber": 3,
                            "audioQuality": "HI_RES_LOSSLESS",
                            "artists": [{"id": 7, "name": "Artist"}],
                            "album": {"id": 9, "title": "Alb", "cover": COVER},
                        },
                        {"title": "no id, skipped"},
                    ],
                }
            }
        ),
    )
    res = module.search_tracks("daft punk", 10)

    assert transport.urls == ["https://tidal.kinoplus.online/search/?s=daft%20punk&limit=10"]
    (t,) = res.tracks
    assert (t.id, t.title, t.artist_name, t.artist_id) == ("123", "Song", "Artist", "7")
    assert (t.album, t.album_id, t.track_number) == ("Alb", "9", 3)
    assert t.quality == AudioQuality.HI_RES
    assert t.album_cover == "https://resources.tidal.com/images/abcdef12/3456/7890/abcd/ef1234567890/640x640.jpg"
    assert t.module_id == MODULE_ID
    assert res.total_tracks == 40
    assert network_logger.get_logs(MODULE_ID)[0].message.startswith("GET https://tidal.kinoplus.online/search/")


def test_search_without_items_is_invalid(module, transport):
    transport.route("https://tidal.kinoplus.online/search/", json_response({"data": {}}))
    with pytest.raises(InvalidResponseError):
        module.search_tracks("x")


def test_stream_decodes_manifest_and_sets_expiry(module, transport, clock):
    transport.route(
        "https://tidal.kinoplus.online/track/",
        json_response(
            {
                "data": {
                    "manifest": _manifest(["https://cdn.example.com/a.flac", "https://cdn.example.com/b.flac"]),
                    "codec": "flac",
                    "audioQuality": "LOSSLESS",
                    "sampleRate": 44100,
                    "bitDepth": 16,
                }
            }
        ),
    )
    info = module.get_track_stream("123", AudioQuality.LOSSLESS)

    assert transport.urls == ["https://tidal.kinoplus.online/track/?id=123&quality=LOSSLESS"]
    assert info.url == "https://cdn.example.com/a.flac"
    assert info.codec == AudioCodec.FLAC
    assert info.expiry == clock.time() + 3600
    assert not info.is_expired(now=clock.time())
    assert info.is_expired(now=clock.time() + 3601)
    assert info.quality_badge == "16-bit/44kHz FLAC"


def test_stream_without_manifest_or_with_garbage(module, transport):
    transport.route("https://tidal.kinoplus.online/track/", json_response({"data": {"manifest": ""}}))
    with pytest.raises(StreamNotAvailableError):
        module.get_track_stream("1")
    transport.route("https://tidal.kinoplus.online/track/", json_response({"data": {"manifest": "!!!"}}))
    with pytest.raises(InvalidResponseError):
        module.get_track_stream("1")


def test_http_errors(module, transport):
    transport.route("https://tidal.kinoplus.online/search/", HttpResponse(status=429, headers={"retry-after": "5"}))
    with pytest.raises(RateLimitedError) as ei:
        module.search_tracks("x")
    assert ei.value.retry_after == 5.0

    transport.route("https://tidal.kinoplus.online/search/", HttpResponse(status=503))
    with pytest.raises(NetworkError):
        module.search_tracks("x")


def test_albums_are_not_supported(module):
    with pytest.raises(AlbumNotFoundError):
        module.get_album("1")


def test_parsing_helpers():
    assert parse_quality("HI_RES") == AudioQuality.MASTER
    assert parse_quality("hi_res_lossless") == AudioQuality.HI_RES
    assert parse_quality("weird") == AudioQuality.LOSSLESS
    assert parse_codec("aac") == AudioCodec.AAC
    assert parse_codec(None) == AudioCodec.FLAC
    assert cover_url(None) is None
    assert cover_url("https://img.example/x.jpg") == "https://img.example/x.jpg"
    assert cover_url("not-a-uuid") == "not-a-uuid"
    assert stream_url_from_manifest(_manifest([])) is None
    assert stream_url_from_manifest(_manifest(["https://a"])) == "https://a"
