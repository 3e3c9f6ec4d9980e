"""telemetry-acceptance: Acceptance tests for OpenTelemetry observability pipelines.

This package provides:
- TestCaseDefinition, Expected*: Pydantic models of the declarative YAML format
- read_test_cases: Discovery, include merging and matrix expansion
- validate_test_case: Static validation before anything is provisioned
- Runner: Polling checks of logs, traces, metrics, profiles and custom scripts
- HttpEndpoint: Queries of Prometheus, Tempo, Loki and Pyroscope over HTTP
- Errors: ConfigurationError, RetryableError and friends

Example:
    >>> from telemetry_acceptance import HttpEndpoint, Runner, read_test_cases
    >>> for test_case in read_test_cases("tests/acceptance"):
    ...     with HttpEndpoint(test_case.ports) as endpoint:
    ...         Runner(test_case, endpoint).run().raise_for_failures()

See Also:
    - telemetry_acceptance.schemas: Test case definition models
    - telemetry_acceptance.cli: Command-line interface
"""

from __future__ import annotations

__version__ = "0.1.0"

from telemetry_acceptance.config import RunSettings
from telemetry_acceptance.endpoint import Endpoint, HttpEndpoint, PortAllocator, Provisioner
from telemetry_acceptance.errors import (
    AssertionMismatch,
    CheckFailedError,
    ConfigurationError,
    DeadlineExceededError,
    HarnessError,
    RetryableError,
    TransientQueryError,
)
from telemetry_acceptance.loader import load_definition, read_test_cases
from telemetry_acceptance.polling import PollResult, poll_until
from telemetry_acceptance.runner import Runner, TestCaseResult
from telemetry_acceptance.schemas import PortConfig, TestCase, TestCaseDefinition
from telemetry_acceptance.validation import validate_test_case

__all__: list[str] = [
    "__version__",
    # Schemas
    "PortConfig",
    "TestCase",
    "TestCaseDefinition",
    # Loading and validation
    "load_definition",
    "read_test_cases",
    "validate_test_case",
    # Execution
    "Endpoint",
    "HttpEndpoint",
    "PollResult",
    "PortAllocator",
    "Provisioner",
    "Runner",
    "RunSettings",
    "TestCaseResult",
    "poll_until",
    # Errors
    "AssertionMismatch",
    "CheckFailedError",
    "ConfigurationError",
    "DeadlineExceededError",
    "HarnessError",
    "RetryableError",
    "TransientQueryError",
]
