"""Schema models for test case definitions and expectations.

Example:
    >>> from telemetry_acceptance.schemas import TestCaseDefinition
    >>> import yaml
    >>> with open("oats.yaml") as f:
    ...     data = yaml.safe_load(f)
    >>> definition = TestCaseDefinition.model_validate(data)
"""

from __future__ import annotations

from telemetry_acceptance.schemas.definition import (
    DEFAULT_INTERVAL,
    DockerCompose,
    Input,
    Kubernetes,
    MatrixVariant,
    TestCaseDefinition,
    parse_duration,
)
from telemetry_acceptance.schemas.expectations import (
    CustomCheck,
    Expected,
    ExpectedLogs,
    ExpectedMetrics,
    ExpectedProfiles,
    ExpectedRange,
    ExpectedSignal,
    ExpectedSpan,
    ExpectedTraces,
    Flamebearers,
)
from telemetry_acceptance.schemas.test_case import (
    DEFAULT_ABSENT_TIMEOUT,
    DEFAULT_TIMEOUT,
    PortConfig,
    TestCase,
)

__all__ = [
    "DEFAULT_ABSENT_TIMEOUT",
    "DEFAULT_INTERVAL",
    "DEFAULT_TIMEOUT",
    "CustomCheck",
    "DockerCompose",
    "Expected",
    "ExpectedLogs",
    "ExpectedMetrics",
    "ExpectedProfiles",
    "ExpectedRange",
    "ExpectedSignal",
    "ExpectedSpan",
    "ExpectedTraces",
    "Flamebearers",
    "Input",
    "Kubernetes",
    "MatrixVariant",
    "PortConfig",
    "TestCase",
    "TestCaseDefinition",
    "parse_duration",
]
