from __future__ import annotations

import pytest

from liquidglass.core.errors import (
    BlockedSchemeError,
    DomainNotAllowedError,
    InsecureConnectionError,
    InvalidURLError,
)
from liquidglass.core.policy.store import PolicyStore
from liquidglass.core.policy.validator import URLValidator, sanitize_url


@pytest.fixture
def v():
    store = PolicyStore(global_allowed_domains=["tidal.kinoplus.online"])
    store.register_module_domains("m", ["api.example.com"])
    return URLValidator(store)


def test_allowed_https_urls_pass(v):
    v.validate_module_url("https://tidal.kinoplus.online/search/?s=x", "m")
    v.validate_module_url("https://api.example.com/v1", "m")
    assert v.is_allowed("https://API.EXAMPLE.com/v1", "m")
    assert v.store.get_violations() == []


def test_missing_scheme_is_invalid_and_not_recorded(v):
    with pytest.raises(InvalidURLError):
        v.validate_module_url("api.example.com/v1", "m")
    assert v.store.get_violations() == []


def test_blocked_scheme_wins_over_https_check(v):
    with pytest.raises(BlockedSchemeError) as ei:
        v.validate_module_url("file:///etc/passwd", "m")
    assert ei.value.context["scheme"] == "file"
    (viol,) = v.store.get_violations("m")
    assert viol.reason == "Blocked URL scheme: file"


def test_plain_http_is_insecure_and_recorded_sanitized(v):
    with pytest.raises(InsecureConnectionError):
        v.validate_module_url("http://api.example.com/a?token=abc&q=1", "m")
    (viol,) = v.store.get_violations("m")
    assert viol.reason == "Non-HTTPS URL: http://api.example.com/a?q=1"
    assert "abc" not in (viol.url or "")


def test_missing_host_is_invalid(v):
    with pytest.raises(InvalidURLError):
        v.validate_module_url("https:///path", "m")


def test_domain_outside_allowlist_is_recorded(v):
    with pytest.raises(DomainNotAllowedError) as ei:
        v.validate_module_url("https://evil.org/x", "m")
    assert ei.value.context["domain"] == "evil.org"
    assert v.store.get_violations("m")[0].reason == "Domain not in allowlist: evil.org"
    assert not v.is_allowed("https://evil.org/x", "m")


def test_module_domains_do_not_leak_to_other_modules(v):
    with pytest.raises(DomainNotAllowedError):
        v.validate_module_url("https://api.example.com/v1", "other")


def test_sanitize_drops_sensitive_params_and_keeps_order():
    url = "https://h.example/p?a=1&token=x&b=2&API_KEY=y&Secret=z&c="
    assert sanitize_url(url) == "https://h.example/p?a=1&b=2&API_KEY=y&c="


def test_sanitize_is_idempotent_and_leaves_plain_urls_alone():
    url = "https://h.example/p?key=1&q=hello%20world"
    once = sanitize_url(url)
    assert once == "https://h.example/p?q=hello%20world"
    assert sanitize_url(once) == once
    assert sanitize_url("https://h.example/p") == "https://h.example/p"
    assert sanitize_url("not a url") == "not a url"
