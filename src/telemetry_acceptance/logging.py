"""Structured logging with OpenTelemetry trace correlation.

Logs are emitted through structlog. When a span is active (the runner opens
one per test case and one per check), trace_id and span_id are added to
every event.

QueryLogger records every backend query and its raw response in the test
case's log file; in verbose mode a truncated copy also goes to structlog.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Generator, MutableMapping
from contextlib import contextmanager
from typing import IO, Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID, Span, Status, StatusCode

# Type alias for structlog EventDict
EventDict = MutableMapping[str, Any]

VERBOSE_SNIPPET = 100
"""Characters of a query result shown in verbose console output."""

_TRACER_NAME = "telemetry_acceptance"


def add_trace_context(
    logger: Any,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Add trace context to structlog event dictionary.

    Args:
        logger: The logger instance (unused, required by structlog processor API).
        method_name: The log method name (unused).
        event_dict: The event dictionary to enrich with trace context.

    Returns:
        The event dictionary with trace_id and span_id added if a span is active.
    """
    ctx = trace.get_current_span().get_span_context()

    if ctx.trace_id != INVALID_TRACE_ID and ctx.span_id != INVALID_SPAN_ID:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")

    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
) -> None:
    """Configure structlog with trace context injection.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output logs as JSON. If False, use console format.
            Logs go to stderr so command output on stdout stays clean.

    Raises:
        ValueError: If the log level is unknown.

    Examples:
        >>> configure_logging(log_level="DEBUG")
        >>> structlog.get_logger().info("configured")
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level {log_level!r}")

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_trace_context,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


@contextmanager
def create_span(
    name: str,
    attributes: dict[str, str | int | float | bool] | None = None,
) -> Generator[Span, None, None]:
    """Create an OpenTelemetry span as the current span.

    Without a configured TracerProvider the span is non-recording.

    Args:
        name: The name for the span.
        attributes: Optional attributes to set on the span.

    Yields:
        The created span.

    Examples:
        >>> with create_span("check", attributes={"check.kind": "logs"}) as span:
        ...     span.set_attribute("check.iterations", 3)
    """
    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(
        name,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.set_attribute("exception.type", type(e).__name__)
            raise


class QueryLogger:
    """Writes queries and raw backend responses to the test case log file.

    Args:
        output: Writable text stream, usually the ``output-<name>.log`` file.
        verbose: Also log a truncated copy of every line through structlog.
    """

    def __init__(self, output: IO[str] | None = None, verbose: bool = False) -> None:
        self.output = output
        self.verbose = verbose
        self._log = structlog.get_logger(__name__).bind(component="QueryLogger")

    def log_query(
        self,
        query: str,
        response: bytes | str | None = None,
        error: BaseException | str | None = None,
        *,
        force: bool = False,
    ) -> None:
        """Record one query.

        Args:
            query: The query that was issued.
            response: The raw response body.
            error: The error raised by the query (or a status note), if any.
            force: Log to structlog even when not verbose (heartbeat).
        """
        if isinstance(response, bytes):
            response = response.decode("utf-8", errors="replace")
        line = f"query {query} response {response or ''} err={error}"
        self.write(line)
        if self.verbose or force:
            snippet = line if len(line) <= VERBOSE_SNIPPET else line[:VERBOSE_SNIPPET] + ".."
            self._log.info("query_result", result=snippet)

    def write(self, text: str) -> None:
        """Append a line to the log file, if any."""
        if self.output is None:
            return
        self.output.write(text.rstrip("\n") + "\n")
        self.output.flush()


__all__ = [
    "QueryLogger",
    "add_trace_context",
    "configure_logging",
    "create_span",
]
