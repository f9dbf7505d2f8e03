from __future__ import annotations

from liquidglass.core.errors import NetworkError
from liquidglass.core.network_logger import NetworkLogger, NetworkLogType
from liquidglass.core.redaction import mask_url, redact

from .helpers.fakes import FakeClock


def test_request_urls_are_masked():
    log = NetworkLogger()
    entry = log.log_request("m", "https://h.example/p?token=abc&q=1", "get", 0.25, 200)
    assert entry.type == NetworkLogType.REQUEST
    assert entry.message == "GET https://h.example/p?token=***&q=1 -> 200"
    assert entry.duration == 0.25


def test_entry_kinds_and_filtering():
    clock = FakeClock()
    log = NetworkLogger(time_fn=clock.time)
    log.log_search("a", "daft punk", 3, 0.1)
    log.log_stream_resolution("b", "t1", "Lossless", 0.2)
    log.log_error("a", NetworkError("boom"))
    log.log_policy_violation("b", "Domain not in allowlist: evil.org")

    assert [e.type for e in log.get_logs()] == [
        NetworkLogType.SEARCH,
        NetworkLogType.STREAM,
        NetworkLogType.ERROR,
        NetworkLogType.POLICY,
    ]
    assert [e.message for e in log.get_logs("b")] == ["Stream t1 @ Lossless", "POLICY: Domain not in allowlist: evil.org"]
    assert log.get_logs("a")[0].message == "Search 'daft punk' -> 3 results"
    assert log.get_logs("a")[0].timestamp == clock.time()


def test_bounded_tail_and_limit():
    log = NetworkLogger(max_entries=3)
    for i in range(5):
        log.log_search("m", f"q{i}", i, 0.0)
    assert [e.message.split("'")[1] for e in log.get_logs()] == ["q2", "q3", "q4"]
    assert len(log.get_logs(limit=1)) == 1
    assert log.get_logs(limit=0) == []
    log.clear()
    assert log.get_logs() == []


def test_mask_and_redact_helpers():
    assert mask_url("https://h/p?sig=1&x=2") == "https://h/p?sig=***&x=2"
    assert mask_url("https://h/p") == "https://h/p"
    assert redact({"password": "p", "nested": [{"api_key": "k", "ok": 1}]}) == {
        "password": "***REDACTED***",
        "nested": [{"api_key": "***REDACTED***", "ok": 1}],
    }
