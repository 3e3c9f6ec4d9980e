"""Test case definition models.

This module provides Pydantic models for the YAML test case definition: the
deployment descriptor (docker-compose or kubernetes), matrix variants, the
HTTP inputs that keep the application producing telemetry, the polling
interval and the expectations.

Example:
    >>> definition = TestCaseDefinition.model_validate(
    ...     {
    ...         "docker-compose": {"files": ["docker-compose.yml"]},
    ...         "input": [{"path": "/stock"}],
    ...         "expected": {"metrics": [{"promql": "up", "value": "== 1"}]},
    ...     }
    ... )
    >>> definition.polling_interval
    0.1
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telemetry_acceptance.schemas.expectations import Expected

DEFAULT_INTERVAL = 0.1
"""Default polling interval in seconds (100ms)."""

DEFAULT_SCHEME = "http"
DEFAULT_HOST = "localhost"
DEFAULT_METHOD = "GET"
DEFAULT_STATUS = 200

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    populate_by_name=True,
    coerce_numbers_to_str=True,
)


def parse_duration(value: str) -> float:
    """Parse a duration string such as ``"100ms"`` or ``"1m30s"`` into seconds.

    Args:
        value: Duration string made of ``<number><unit>`` parts.

    Returns:
        Duration in seconds.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"invalid duration {value!r}, expected e.g. '100ms', '2s' or '1m30s'")
    return total


class DockerCompose(BaseModel):
    """Docker Compose deployment descriptor (opaque to the execution engine).

    Attributes:
        files: Compose files, relative to the test case directory.
        env: Extra ``KEY=value`` environment entries.
    """

    model_config = _MODEL_CONFIG

    files: list[str] = Field(default_factory=list)
    env: list[str] = Field(default_factory=list)


class Kubernetes(BaseModel):
    """Kubernetes deployment descriptor (opaque to the execution engine)."""

    model_config = _MODEL_CONFIG

    dir: str = ""
    app_service: str = Field(default="", alias="app-service")
    app_docker_file: str = Field(default="", alias="app-docker-file")
    app_docker_context: str = Field(default="", alias="app-docker-context")
    app_docker_tag: str = Field(default="", alias="app-docker-tag")
    app_docker_port: int = Field(default=0, alias="app-docker-port")
    import_images: list[str] = Field(default_factory=list, alias="import-images")


class MatrixVariant(BaseModel):
    """One named deployment variant of a definition."""

    model_config = _MODEL_CONFIG

    name: str = ""
    docker_compose: DockerCompose | None = Field(default=None, alias="docker-compose")
    kubernetes: Kubernetes | None = None


class Input(BaseModel):
    """One HTTP call issued against the application on every poll iteration.

    Attributes:
        scheme: ``http`` (default) or ``https``.
        host: Target host, defaults to localhost.
        method: HTTP method, defaults to GET.
        path: Request path, required.
        headers: Request headers.
        body: Request body; must be empty for GET.
        status: Expected response status, defaults to 200.
    """

    model_config = _MODEL_CONFIG

    scheme: str = ""
    host: str = ""
    method: str = ""
    path: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    status: str = ""

    @property
    def effective_method(self) -> str:
        return (self.method or DEFAULT_METHOD).upper()

    @property
    def effective_scheme(self) -> str:
        return (self.scheme or DEFAULT_SCHEME).lower()

    @property
    def effective_host(self) -> str:
        return self.host or DEFAULT_HOST

    @property
    def expected_status(self) -> int:
        """Expected status code; an unparsable status falls back to 200."""
        if not self.status:
            return DEFAULT_STATUS
        try:
            return int(self.status)
        except ValueError:
            return DEFAULT_STATUS


class TestCaseDefinition(BaseModel):
    """A parsed test case definition (one YAML file, includes merged).

    Exactly one of ``docker_compose`` and ``kubernetes`` must be set; this is
    enforced by validation, not by the type.

    Attributes:
        include: Other definitions to merge in, relative to this file.
        docker_compose: Docker Compose deployment descriptor.
        kubernetes: Kubernetes deployment descriptor.
        matrix: Deployment variants; each becomes its own test case.
        input: HTTP calls issued on every poll iteration.
        interval: Polling interval in seconds (unset = 100ms).
        expected: The expectations.
    """

    __test__ = False  # not a pytest test class

    model_config = _MODEL_CONFIG

    include: list[str] = Field(default_factory=list)
    docker_compose: DockerCompose | None = Field(default=None, alias="docker-compose")
    kubernetes: Kubernetes | None = None
    matrix: list[MatrixVariant] = Field(default_factory=list)
    input: list[Input] = Field(default_factory=list)
    interval: float | None = Field(default=None, ge=0.0)
    expected: Expected = Field(default_factory=Expected)

    @field_validator("interval", mode="before")
    @classmethod
    def parse_interval(cls, v: Any) -> Any:
        """Accept duration strings (``"100ms"``) as well as seconds."""
        if isinstance(v, str):
            return parse_duration(v)
        return v

    @property
    def polling_interval(self) -> float:
        """Effective polling interval in seconds."""
        if not self.interval:
            return DEFAULT_INTERVAL
        return self.interval

    def merge(self, other: TestCaseDefinition) -> TestCaseDefinition:
        """Merge an included definition into this one.

        Expectation lists, matrix and input are concatenated (``self`` first).
        Deployment descriptors and the interval are taken from ``self`` when
        set, else from ``other``.

        Args:
            other: The included definition.

        Returns:
            New merged TestCaseDefinition.
        """
        mine = self.expected
        theirs = other.expected
        expected = Expected(
            compose_logs=[*mine.compose_logs, *theirs.compose_logs],
            logs=[*mine.logs, *theirs.logs],
            traces=[*mine.traces, *theirs.traces],
            metrics=[*mine.metrics, *theirs.metrics],
            profiles=[*mine.profiles, *theirs.profiles],
            custom_checks=[*mine.custom_checks, *theirs.custom_checks],
        )
        return self.model_copy(
            update={
                "docker_compose": self.docker_compose or other.docker_compose,
                "kubernetes": self.kubernetes or other.kubernetes,
                "matrix": [*self.matrix, *other.matrix],
                "input": [*self.input, *other.input],
                "interval": self.interval if self.interval is not None else other.interval,
                "expected": expected,
            }
        )


__all__ = [
    "DEFAULT_INTERVAL",
    "DockerCompose",
    "Input",
    "Kubernetes",
    "MatrixVariant",
    "TestCaseDefinition",
    "parse_duration",
]
