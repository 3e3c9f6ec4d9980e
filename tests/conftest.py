"""Root-level test configuration for telemetry-acceptance.

This conftest.py provides fixtures shared by every test tier:
- paths to the YAML and JSON test data
- a structlog reset between tests
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

TESTDATA = Path(__file__).parent / "testdata"


@pytest.fixture(autouse=True)
def _reset_structlog() -> Generator[None, None, None]:
    """Restore the default structlog configuration after each test.

    Commands configure logging against the stream they run with; CliRunner
    closes that stream when the invocation ends.
    """
    yield
    structlog.reset_defaults()


@pytest.fixture(scope="session")
def testdata() -> Path:
    """Path to the tests/testdata directory."""
    return TESTDATA


@pytest.fixture(scope="session")
def acceptance_dir(testdata: Path) -> Path:
    """Directory tree of sample test case definitions."""
    return testdata / "acceptance"


@pytest.fixture(scope="session")
def response_body(testdata: Path):
    """Factory returning the raw bytes of a recorded backend response.

    Usage:
        def test_loki(response_body) -> None:
            body = response_body("loki_query_range.json")
    """

    def _load(name: str) -> bytes:
        return (testdata / "responses" / name).read_bytes()

    return _load
