"""Static validation of test case definitions.

Validation runs before anything is provisioned, so malformed or
contradictory definitions fail in milliseconds instead of after a slow
environment start. Every check runs; all failures are reported together in
one ConfigurationError.

Functions:
    validate_test_case: Validate a test case and assign default ports
    validate_definition: Collect the failures of a merged definition
    validate_signal: Collect the failures of a log or trace signal
    validate_count: Collect the failures of a count range
    validate_inputs: Collect the failures of the application inputs

Example:
    >>> from telemetry_acceptance.validation import validate_test_case
    >>> validate_test_case(test_case)  # raises ConfigurationError if invalid
    >>> test_case.port_config.application_port
    8080
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import Path

import structlog

from telemetry_acceptance.errors import ConfigurationError
from telemetry_acceptance.matching import parse_comparator
from telemetry_acceptance.schemas.definition import (
    DockerCompose,
    Input,
    Kubernetes,
    TestCaseDefinition,
)
from telemetry_acceptance.schemas.expectations import ExpectedRange, ExpectedSignal
from telemetry_acceptance.schemas.test_case import PortConfig, TestCase

logger = structlog.get_logger(__name__)

HTTP_METHODS = frozenset(
    {"CONNECT", "DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT", "TRACE"}
)
HTTP_SCHEMES = frozenset({"http", "https"})

_INTEGER = re.compile(r"[+-]?\d+")
_INT32_MAX = 2**31 - 1


def _check_pattern(pattern: str, context: str, what: str = "regexp") -> list[str]:
    try:
        re.compile(pattern)
    except re.error as e:
        return [f"{what} {pattern!r} does not compile in {context}: {e}"]
    return []


def validate_count(count: ExpectedRange | None, context: str) -> list[str]:
    """Check a count range against the count-range policy.

    Args:
        count: The range, or None (1 or more).
        context: Location of the signal, for messages.

    Returns:
        Failure messages; empty if the range is valid.
    """
    if count is None:
        return []
    errors = []
    if count.min == 0 and count.max > 0:
        errors.append(f"count min=0 and max>0 is not supported in {context}")
    if count.min < 0:
        errors.append(f"count.min is negative in {context}")
    if count.max != 0 and count.max < count.min:
        errors.append(f"count.max is less than count.min in {context}")
    return errors


def validate_signal(signal: ExpectedSignal, context: str) -> list[str]:
    """Check a log or trace signal.

    In absence mode (count min=0, max=0) no name or attribute constraint may
    be given; an empty string counts as given.

    Args:
        signal: The signal to check.
        context: Location of the signal, for messages.

    Returns:
        Failure messages; empty if the signal is valid.
    """
    errors = []
    if signal.contains is not None:
        errors.append(f"'contains' is deprecated, use 'regexp' instead in {context}")

    if signal.expect_absent:
        if signal.equals is not None:
            errors.append(f"expected 'equals' to be unset when count min=0 and max=0 in {context}")
        if signal.regexp is not None:
            errors.append(f"expected 'regexp' to be unset when count min=0 and max=0 in {context}")
        if signal.attributes:
            errors.append(
                f"expected 'attributes' to be empty when count min=0 and max=0 in {context}"
            )
        if signal.attribute_regexp:
            errors.append(
                f"expected 'attribute-regexp' to be empty when count min=0 and max=0 in {context}"
            )
    else:
        if not signal.equals and not signal.regexp:
            errors.append(f"either 'equals' or 'regexp' must be set in {context}")
        for mapping in (signal.attributes, signal.attribute_regexp):
            for key, value in mapping.items():
                if not key:
                    errors.append(f"attribute key is empty in {context}")
                if not value:
                    errors.append(f"attribute value is empty in {context}")

    if signal.regexp:
        errors.extend(_check_pattern(signal.regexp, context))
    for key, pattern in signal.attribute_regexp.items():
        if pattern:
            errors.extend(_check_pattern(pattern, context, f"attribute-regexp {key!r}"))

    errors.extend(validate_count(signal.count, context))
    return errors


def validate_inputs(inputs: Sequence[Input]) -> list[str]:
    """Check the application inputs.

    Returns:
        Failure messages; empty if every input is valid.
    """
    errors = []
    for index, input in enumerate(inputs):
        context = f"input[{index}]"
        if not input.path:
            errors.append(f"input path is empty in {context}")
        if input.status:
            if not _INTEGER.fullmatch(input.status) or abs(int(input.status)) > _INT32_MAX:
                errors.append(f"status must parse as integer or be empty in {context}")
        if input.method and input.method.upper() not in HTTP_METHODS:
            errors.append(f"method must be a supported HTTP method or be empty in {context}")
        if input.effective_method == "GET" and input.body:
            errors.append(f"body must be empty for GET requests in {context}")
        if input.scheme and input.scheme.lower() not in HTTP_SCHEMES:
            errors.append(f"scheme must be http, https or be empty in {context}")
    return errors


def validate_kubernetes(kubernetes: Kubernetes) -> list[str]:
    """Check the required Kubernetes fields."""
    errors = []
    if not kubernetes.dir:
        errors.append("k8s-dir is empty")
    if not kubernetes.app_service:
        errors.append("k8s-app-service is empty")
    if not kubernetes.app_docker_file:
        errors.append("app-docker-file is empty")
    if not kubernetes.app_docker_tag:
        errors.append("app-docker-tag is empty")
    if kubernetes.app_docker_port == 0:
        errors.append("app-docker-port is zero")
    return errors


def validate_docker_compose(docker_compose: DockerCompose, directory: Path) -> list[str]:
    """Check that every compose file is a regular file relative to ``directory``."""
    errors = []
    for filename in docker_compose.files:
        path = directory / filename
        if not path.is_file():
            errors.append(f"docker-compose file {str(path)!r} is not a regular file")
    return errors


def validate_definition(definition: TestCaseDefinition, directory: Path) -> list[str]:
    """Collect every failure of a merged definition.

    Args:
        definition: Definition with includes already merged.
        directory: Directory of the definition file; relative paths resolve here.

    Returns:
        Failure messages in check order; empty if the definition is valid.
    """
    errors: list[str] = []

    if definition.kubernetes is not None:
        errors.extend(validate_kubernetes(definition.kubernetes))
        if definition.docker_compose is not None:
            errors.append("kubernetes and docker-compose are mutually exclusive")
    elif definition.docker_compose is None:
        errors.append("either docker-compose or kubernetes must be set")
    else:
        errors.extend(validate_docker_compose(definition.docker_compose, directory))

    errors.extend(validate_inputs(definition.input))

    expected = definition.expected
    if expected.signal_count == 0:
        errors.append("no expected metrics, traces, logs or profiles")

    for index, check in enumerate(expected.custom_checks):
        if not check.script:
            errors.append(f"script is empty in custom-checks[{index}]")

    for index, logs in enumerate(expected.logs):
        context = f"logs[{index}]"
        if not logs.logql:
            errors.append(f"logql is empty in {context}")
        errors.extend(validate_signal(logs, context))

    for index, metrics in enumerate(expected.metrics):
        context = f"metrics[{index}]"
        if not metrics.promql:
            errors.append(f"promql is empty in {context}")
        if not metrics.value:
            errors.append(f"value is empty in {context}")
        else:
            try:
                parse_comparator(metrics.value)
            except ConfigurationError as e:
                errors.append(f"{e} in {context}")

    for index, traces in enumerate(expected.traces):
        context = f"traces[{index}]"
        if not traces.traceql:
            errors.append(f"traceql is empty in {context}")
        if traces.spans:
            errors.append(f"spans are deprecated, add to 'traces' directly in {context}")
        errors.extend(validate_signal(traces, context))

    for index, profiles in enumerate(expected.profiles):
        context = f"profiles[{index}]"
        flamebearers = profiles.flamebearers
        if not profiles.query:
            errors.append(f"query is empty in {context}")
        if flamebearers.contains is not None:
            errors.append(f"'contains' is deprecated, use 'regexp' instead in {context}")
        if bool(flamebearers.equals) == bool(flamebearers.regexp):
            errors.append(f"exactly one of 'equals' or 'regexp' must be set in {context}")
        if flamebearers.regexp:
            errors.extend(_check_pattern(flamebearers.regexp, context))

    return errors


def validate_test_case(test_case: TestCase) -> None:
    """Validate a test case and assign default ports.

    Default ports (PortConfig()) are assigned only when none were set, i.e.
    in non-parallel mode. Validating twice yields the same outcome.

    Args:
        test_case: The test case to validate.

    Raises:
        ConfigurationError: Listing every validation failure.
    """
    errors = validate_definition(test_case.definition, test_case.dir)
    if errors:
        logger.warning("test_case_invalid", test_case=test_case.name, error_count=len(errors))
        raise ConfigurationError(
            f"invalid test case '{test_case.name}'",
            errors=errors,
            source=str(test_case.path),
        )

    if test_case.port_config is None:
        test_case.port_config = PortConfig()

    ports = test_case.port_config
    logger.debug(
        "test_case_ports",
        test_case=test_case.name,
        application=ports.application_port,
        grafana=ports.grafana_http_port,
        prometheus=ports.prometheus_http_port,
        loki=ports.loki_http_port,
        tempo=ports.tempo_http_port,
        pyroscope=ports.pyroscope_http_port,
    )


__all__ = [
    "HTTP_METHODS",
    "HTTP_SCHEMES",
    "validate_count",
    "validate_definition",
    "validate_docker_compose",
    "validate_inputs",
    "validate_kubernetes",
    "validate_signal",
    "validate_test_case",
]
