from __future__ import annotations

import json

from liquidglass.core.policy.models import BUILTIN_CERTIFICATE_ID, CertificateKind
from liquidglass.core.policy.store import PolicyStore
from liquidglass.core.security_events import SecurityAuditLogger

from .helpers.fakes import FakeClock


def test_defaults_include_global_domains_and_blocked_schemes():
    store = PolicyStore()
    assert "tidal.kinoplus.online" in store.global_allowed_domains
    assert store.is_scheme_blocked("FILE")
    assert store.is_scheme_blocked("data")
    assert not store.is_scheme_blocked("https")


def test_module_domains_are_scoped_to_their_module():
    store = PolicyStore(global_allowed_domains=[])
    store.register_module_domains("a", ["API.Example.com", " ", ""])
    assert store.module_domains("a") == ["api.example.com"]
    assert store.is_domain_allowed("api.example.com", "a")
    assert not store.is_domain_allowed("api.example.com", "b")

    store.unregister_module_domains("a")
    assert not store.is_domain_allowed("api.example.com", "a")


def test_suffix_match_accepts_lookalike_hosts():
    # documented weakness: plain suffix match, no dot boundary
    store = PolicyStore(global_allowed_domains=["tidal.com"])
    assert store.is_domain_allowed("eviltidal.com", "x")
    assert store.is_domain_allowed("api.tidal.com", "x")
    assert not store.is_domain_allowed("tidal.com.evil.org", "x")


def test_violations_are_bounded_and_filterable():
    clock = FakeClock()
    store = PolicyStore(max_violations=3, time_fn=clock.time)
    for i in range(5):
        store.record_violation("m1" if i % 2 == 0 else "m2", f"reason {i}")
        clock.advance(1)

    all_v = store.get_violations()
    assert [v.reason for v in all_v] == ["reason 2", "reason 3", "reason 4"]
    assert [v.reason for v in store.get_violations("m1")] == ["reason 2", "reason 4"]
    assert all_v[0].timestamp == 1_700_000_002.0


def test_clear_violations_for_one_module_keeps_the_rest():
    store = PolicyStore()
    store.record_violation("a", "x")
    store.record_violation("b", "y")
    store.record_violation("a", "z")

    assert store.clear_violations("a") == 2
    assert [v.module_id for v in store.get_violations()] == ["b"]
    assert store.clear_violations() == 1
    assert store.get_violations() == []


def test_violation_is_written_to_audit_trail_with_masked_url(tmp_path):
    path = tmp_path / "security.jsonl"
    store = PolicyStore(audit_logger=SecurityAuditLogger(path=str(path)))
    store.record_violation("m", "Domain not in allowlist: evil.com", url="https://evil.com/x?token=abc")

    obj = json.loads(path.read_text(encoding="utf-8").splitlines()[-1])
    assert obj["event"] == "policy.violation"
    assert obj["module_id"] == "m"
    assert obj["outcome"] == "denied"
    assert "abc" not in json.dumps(obj)


def test_rate_limit_window_and_hit_count():
    clock = FakeClock()
    store = PolicyStore(time_fn=clock.time)
    assert not store.is_rate_limited("m")
    assert store.rate_limit_remaining("m") is None

    st = store.record_rate_limit("m", 30)
    assert st.hit_count == 1
    assert store.is_rate_limited("m")
    assert store.rate_limit_remaining("m") == 30

    clock.advance(29.5)
    assert store.is_rate_limited("m")
    clock.advance(1)
    assert not store.is_rate_limited("m")
    assert store.rate_limit_remaining("m") is None

    assert store.record_rate_limit("m", 5).hit_count == 2


def test_builtin_certificate_is_seeded_and_others_can_be_added():
    store = PolicyStore()
    cert = store.get_trusted_certificate(BUILTIN_CERTIFICATE_ID)
    assert cert is not None
    assert cert.kind == CertificateKind.OPAQUE

    store.add_trusted_certificate("vendor", b"material", CertificateKind.OPAQUE)
    assert store.trusted_certificate_ids() == sorted([BUILTIN_CERTIFICATE_ID, "vendor"])
    assert store.get_trusted_certificate("missing") is None
