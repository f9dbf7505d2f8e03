from __future__ import annotations

import logging
import os

from liquidglass.core.logger import LOG_FILE, UrlMaskingFilter, setup_logging
from liquidglass.core.trace import current_trace_id, is_valid_trace_id, resolve_trace_id, trace_context


def test_trace_context_sets_and_restores():
    assert current_trace_id() is None
    with trace_context("outer-1") as outer:
        assert outer == "outer-1"
        assert current_trace_id() == "outer-1"
        with trace_context(None) as inner:
            # no candidate: the active id is kept
            assert inner == "outer-1"
        assert resolve_trace_id() == "outer-1"
    assert current_trace_id() is None


def test_invalid_trace_ids_are_replaced():
    assert is_valid_trace_id("abc_DEF-1.2")
    assert not is_valid_trace_id("")
    assert not is_valid_trace_id("has space")
    assert not is_valid_trace_id("x" * 65)
    fresh = resolve_trace_id("bad\nid")
    assert fresh != "bad\nid"
    assert len(fresh) == 32


def _record(msg, *args):
    return logging.LogRecord("liquidglass.test", logging.INFO, __file__, 1, msg, args, None)


def test_url_masking_filter_masks_query_secrets():
    rec = _record("GET %s failed", "https://api.example.com/a?q=1&token=abc")
    assert UrlMaskingFilter().filter(rec) is True
    assert rec.getMessage() == "GET https://api.example.com/a?q=1&token=*** failed"


def test_url_masking_filter_leaves_plain_messages_alone():
    rec = _record("loaded %d modules", 3)
    UrlMaskingFilter().filter(rec)
    assert rec.args == (3,)
    assert rec.getMessage() == "loaded 3 modules"


def test_setup_logging_writes_masked_lines(tmp_path):
    logger = setup_logging(str(tmp_path), console=False)
    try:
        logger.getChild("net").warning("fetch https://cdn.example.com/x?sig=s3cret&a=b")
        for h in logger.handlers:
            h.flush()
        text = (tmp_path / LOG_FILE).read_text(encoding="utf-8")
        assert "sig=***&a=b" in text
        assert "s3cret" not in text
        assert "| WARNING | liquidglass.net |" in text
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()
    assert os.path.isdir(str(tmp_path))
