"""Unit test fixtures for telemetry-acceptance.

This module provides fixtures specific to unit tests, which:
- Run without external services (no backends, no application)
- Use fakes for the endpoint, the clock and the HTTP transport
- Execute quickly (< 1s per test)

For shared fixtures across all test tiers, see ../conftest.py.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from telemetry_acceptance.config import RunSettings
from telemetry_acceptance.schemas import TestCase, TestCaseDefinition


class FakeClock:
    """Deterministic monotonic clock; sleeping advances time."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEndpoint:
    """In-memory Endpoint returning canned response bodies.

    Each query method pops the next body from its queue; the last body is
    repeated once the queue is down to one entry. A queued exception is
    raised instead of returned.
    """

    def __init__(self) -> None:
        self.responses: dict[str, list[Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.compose_logs: list[str] = []
        self.started = 0
        self.stopped = 0

    def queue(self, method: str, *bodies: Any) -> None:
        self.responses.setdefault(method, []).extend(bodies)

    def _next(self, method: str, query: str) -> bytes:
        self.calls.append((method, query))
        queue = self.responses.get(method)
        if not queue:
            raise AssertionError(f"unexpected {method} call with {query!r}")
        body = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(body, Exception):
            raise body
        if isinstance(body, str):
            return body.encode()
        return body

    def run_promql(self, query: str) -> bytes:
        return self._next("run_promql", query)

    def search_traces(self, traceql: str) -> bytes:
        return self._next("search_traces", traceql)

    def get_trace_by_id(self, trace_id: str) -> bytes:
        return self._next("get_trace_by_id", trace_id)

    def search_logs(self, logql: str) -> bytes:
        return self._next("search_logs", logql)

    def search_profiles(self, query: str) -> bytes:
        return self._next("search_profiles", query)

    def search_compose_logs(self, message: str) -> bool:
        self.calls.append(("search_compose_logs", message))
        return any(message in line for line in self.compose_logs)

    def start(self) -> None:
        self.started += 1

    def stop(self) -> None:
        self.stopped += 1


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a fake clock whose sleep advances time."""
    return FakeClock()


@pytest.fixture
def fake_endpoint() -> FakeEndpoint:
    """Provide an in-memory endpoint with no queued responses."""
    return FakeEndpoint()


@pytest.fixture
def run_settings(tmp_path: Path) -> RunSettings:
    """Run settings writing output below the test's temporary directory."""
    return RunSettings(output_root=tmp_path / "build")


@pytest.fixture
def app_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.Client]:
    """Factory for HTTP clients backed by httpx.MockTransport.

    Usage:
        def test_inputs(app_client) -> None:
            client = app_client(lambda request: httpx.Response(200))
    """

    def _create(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(handler))

    return _create


@pytest.fixture
def make_test_case(tmp_path: Path) -> Callable[..., TestCase]:
    """Factory building a TestCase from a definition mapping.

    A docker-compose.yml is created in the test case directory, and the
    definition uses it unless it names its own deployment.

    Usage:
        def test_x(make_test_case) -> None:
            test_case = make_test_case({"expected": {"metrics": [...]}})
    """
    directory = tmp_path / "case"
    directory.mkdir()
    (directory / "docker-compose.yml").write_text("services: {}\n")

    def _create(definition: dict[str, Any], **kwargs: Any) -> TestCase:
        data = dict(definition)
        if "docker-compose" not in data and "kubernetes" not in data:
            data["docker-compose"] = {"files": ["docker-compose.yml"]}
        kwargs.setdefault("name", "run-case-oats")
        return TestCase(
            path=directory / "oats.yaml",
            dir=directory,
            definition=TestCaseDefinition.model_validate(data),
            **kwargs,
        )

    return _create
