"""Unit tests for logging and tracing helpers.

Tests cover:
- configure_logging (levels, JSON output, stderr)
- add_trace_context with and without an active span
- create_span error handling
- QueryLogger output
"""

from __future__ import annotations

import io
import json

import pytest
import structlog
from opentelemetry import trace
from opentelemetry.trace import NonRecordingSpan, SpanContext

from telemetry_acceptance.logging import (
    VERBOSE_SNIPPET,
    QueryLogger,
    add_trace_context,
    configure_logging,
    create_span,
)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        """JSON events are written to stderr, not stdout."""
        configure_logging("INFO", json_output=True)

        structlog.get_logger("test").info("check_passed", iterations=3)

        captured = capsys.readouterr()
        assert captured.out == ""
        event = json.loads(captured.err.strip())
        assert event["event"] == "check_passed"
        assert event["iterations"] == 3
        assert event["level"] == "info"
        assert "timestamp" in event
        assert "trace_id" not in event

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Events below the configured level are dropped."""
        configure_logging("warning")

        log = structlog.get_logger("test")
        log.info("hidden")
        log.warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_unknown_level(self) -> None:
        """An unknown level name is rejected."""
        with pytest.raises(ValueError, match="unknown log level"):
            configure_logging("VERBOSE")


class TestTraceContext:
    """Tests for add_trace_context."""

    def test_no_active_span(self) -> None:
        """Nothing is added without an active span."""
        assert add_trace_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_active_span(self) -> None:
        """Trace and span IDs of the active span are added as hex."""
        span = NonRecordingSpan(SpanContext(trace_id=0xABC, span_id=0x12, is_remote=False))

        with trace.use_span(span):
            event = add_trace_context(None, "info", {"event": "x"})

        assert event["trace_id"] == f"{0xABC:032x}"
        assert event["span_id"] == f"{0x12:016x}"


class TestCreateSpan:
    """Tests for create_span."""

    def test_yields_span(self) -> None:
        """A span is yielded even without a configured provider."""
        with create_span("check", attributes={"check.kind": "logs"}) as span:
            span.set_attribute("check.iterations", 1)

    def test_reraises(self) -> None:
        """Exceptions inside the span propagate unchanged."""
        with pytest.raises(RuntimeError, match="boom"), create_span("check"):
            raise RuntimeError("boom")


class TestQueryLogger:
    """Tests for QueryLogger."""

    def test_writes_lines(self) -> None:
        """Queries, responses and errors are written one line each."""
        output = io.StringIO()
        query_logger = QueryLogger(output)

        query_logger.log_query("up", b'{"status":"success"}')
        query_logger.log_query("{}", None, "connection refused")
        query_logger.write("iteration 1 after 0.1s: not yet\n")

        assert output.getvalue().splitlines() == [
            'query up response {"status":"success"} err=None',
            "query {} response  err=connection refused",
            "iteration 1 after 0.1s: not yet",
        ]

    def test_without_output(self) -> None:
        """Without a file nothing is written and nothing fails."""
        QueryLogger().log_query("up", "body")

    def test_verbose_logs_snippet(self) -> None:
        """Verbose mode logs a truncated copy of the line."""
        with structlog.testing.capture_logs() as logs:
            QueryLogger(verbose=True).log_query("up", "x" * 500)

        (event,) = logs
        assert event["event"] == "query_result"
        assert event["result"].startswith("query up response xxx")
        assert len(event["result"]) == VERBOSE_SNIPPET + 2

    def test_quiet_unless_forced(self) -> None:
        """Without verbose mode only forced queries are logged."""
        with structlog.testing.capture_logs() as logs:
            query_logger = QueryLogger()
            query_logger.log_query("up", "1")
            query_logger.log_query("up", "2", force=True)

        assert [event["result"] for event in logs] == ["query up response 2 err=None"]
