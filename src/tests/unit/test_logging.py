"""Tests for JSON logging, trace context and rate limiting."""

import json
import logging

from mediahost.app.logging import (
    CustomJsonFormatter,
    RateLimitFilter,
    clear_trace_context,
    get_trace_id,
    set_trace_id,
)


def _record(msg: str = "hello", level: int = logging.INFO, lineno: int = 10) -> logging.LogRecord:
    return logging.LogRecord("mediahost.test", level, __file__, lineno, msg, None, None)


class TestTraceContext:
    def test_set_and_clear(self) -> None:
        assert set_trace_id("abc") == "abc"
        assert get_trace_id() == "abc"

        clear_trace_context()

        assert get_trace_id() is None

    def test_generated_when_missing(self) -> None:
        tid = set_trace_id(None)
        assert tid
        clear_trace_context()


class TestRateLimitFilter:
    def test_drops_after_limit(self) -> None:
        limiter = RateLimitFilter(rate_per_minute=3)

        results = [limiter.filter(_record()) for _ in range(6)]

        # 3 allowed, one rate-limited marker, then dropped
        assert results == [True, True, True, True, False, False]

    def test_marker_message(self) -> None:
        limiter = RateLimitFilter(rate_per_minute=1)
        limiter.filter(_record())

        marker = _record()
        assert limiter.filter(marker) is True
        assert str(marker.msg).startswith("[RATE LIMITED]")

    def test_errors_bypass(self) -> None:
        limiter = RateLimitFilter(rate_per_minute=1)

        results = [limiter.filter(_record(level=logging.ERROR)) for _ in range(5)]

        assert all(results)

    def test_call_sites_counted_separately(self) -> None:
        limiter = RateLimitFilter(rate_per_minute=1)

        assert limiter.filter(_record(lineno=1)) is True
        assert limiter.filter(_record(lineno=2)) is True


class TestCustomJsonFormatter:
    def test_standard_fields(self) -> None:
        formatter = CustomJsonFormatter()
        record = _record("Container started")
        record.customer_id = "c1"

        set_trace_id("trace-1")
        try:
            payload = json.loads(formatter.format(record))
        finally:
            clear_trace_context()

        assert payload["message"] == "Container started"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "mediahost.test"
        assert payload["service"] == "mediahost-orchestrator"
        assert payload["schema_version"] == "1.0"
        assert payload["trace_id"] == "trace-1"
        assert payload["customer_id"] == "c1"
