from __future__ import annotations

import pytest
import requests

from liquidglass.core.config.models import NetworkConfigFile
from liquidglass.core.errors import NetworkError
from liquidglass.core.net.transport import HttpResponse, HttpTransport


class _FakeRequestsResponse:
    def __init__(self, status_code=200, content=b"{}", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {"Content-Type": "application/json"}


class _FakeSession:
    def __init__(self, *, response=None, exc=None):
        self.response = response or _FakeRequestsResponse()
        self.exc = exc
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.exc is not None:
            raise self.exc
        return self.response

    def close(self):
        self.closed = True


def test_request_merges_headers_and_uses_default_timeout():
    session = _FakeSession(response=_FakeRequestsResponse(200, b'{"a": 1}', {"Retry-After": "5"}))
    t = HttpTransport(timeout_seconds=12.0, session=session)

    resp = t.request("get", "https://api.example.com/x", headers={"X-Test": "1"}, body="hi")

    (call,) = session.calls
    assert call["method"] == "GET"
    assert call["timeout"] == 12.0
    assert call["data"] == b"hi"
    assert call["headers"]["Accept"] == "application/json"
    assert call["headers"]["User-Agent"] == "LiquidGlass/1.0"
    assert call["headers"]["X-Test"] == "1"
    assert resp.ok
    assert resp.json() == {"a": 1}
    assert resp.header("retry-after") == "5"


def test_per_call_timeout_wins():
    session = _FakeSession()
    HttpTransport(timeout_seconds=12.0, session=session).request("GET", "https://a.example.com", timeout=2)
    assert session.calls[0]["timeout"] == 2.0


def test_from_config_applies_user_agent_and_headers():
    cfg = NetworkConfigFile(timeout_seconds=5.0, user_agent="Test/2", default_headers={"Accept": "text/plain"})
    t = HttpTransport.from_config(cfg)
    assert t.timeout_seconds == 5.0
    assert t.default_headers == {"Accept": "text/plain", "User-Agent": "Test/2"}
    t.close()


def test_transport_failures_become_network_errors_with_masked_url():
    t = HttpTransport(session=_FakeSession(exc=requests.ConnectionError("refused")))
    with pytest.raises(NetworkError) as ei:
        t.request("GET", "https://a.example.com/x?token=abc")
    assert "abc" not in str(ei.value.to_dict())

    t = HttpTransport(session=_FakeSession(exc=requests.Timeout()))
    with pytest.raises(NetworkError) as ei:
        t.request("GET", "https://a.example.com/x")
    assert ei.value.user_message == "Network error: Request timed out"


def test_non_2xx_is_returned_not_raised():
    t = HttpTransport(session=_FakeSession(response=_FakeRequestsResponse(503, b"busy", {})))
    resp = t.request("GET", "https://a.example.com/x")
    assert resp.status == 503
    assert not resp.ok
    assert resp.text() == "busy"


def test_close_closes_session():
    session = _FakeSession()
    HttpTransport(session=session).close()
    assert session.closed


def test_http_response_header_lookup_is_case_insensitive():
    resp = HttpResponse(status=200, headers={"Content-Type": "a"})
    assert resp.header("content-type") == "a"
    assert resp.header("missing") is None
