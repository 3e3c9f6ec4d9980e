"""Unit tests for the test case definition schemas.

Tests cover:
- Kebab-case aliases and rejection of unknown keys
- Duration parsing for the polling interval
- Include merging (concatenation order, deployment precedence)
- Count range helpers and input defaults
- Port configuration
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from telemetry_acceptance.schemas import (
    DEFAULT_INTERVAL,
    ExpectedLogs,
    ExpectedRange,
    Input,
    PortConfig,
    TestCase,
    TestCaseDefinition,
    parse_duration,
)


class TestDefinitionParsing:
    """Tests for parsing definitions from mappings."""

    def test_aliases(self) -> None:
        """YAML keys are kebab-case."""
        definition = TestCaseDefinition.model_validate(
            {
                "docker-compose": {"files": ["docker-compose.yml"], "env": ["A=1"]},
                "expected": {
                    "compose-logs": ["started"],
                    "custom-checks": [{"script": "check.sh", "matrix-condition": "native"}],
                    "traces": [
                        {
                            "traceql": "{}",
                            "equals": "GET /",
                            "attribute-regexp": {"k": "v.*"},
                            "no-extra-attributes": True,
                        }
                    ],
                },
            }
        )

        assert definition.docker_compose is not None
        assert definition.docker_compose.env == ["A=1"]
        assert definition.expected.compose_logs == ["started"]
        assert definition.expected.custom_checks[0].matrix_condition == "native"
        trace = definition.expected.traces[0]
        assert trace.attribute_regexp == {"k": "v.*"}
        assert trace.no_extra_attributes is True

    def test_unknown_keys_are_rejected(self) -> None:
        """Typos in keys are errors, not silently ignored."""
        with pytest.raises(ValidationError):
            TestCaseDefinition.model_validate({"expected": {"log": []}})

    def test_numbers_in_string_fields(self) -> None:
        """YAML numbers are accepted where strings are expected."""
        input = Input.model_validate({"path": "/x", "status": 201})

        assert input.status == "201"
        assert input.expected_status == 201

    def test_models_are_frozen(self) -> None:
        """Definitions are immutable once parsed."""
        definition = TestCaseDefinition()

        with pytest.raises(ValidationError):
            definition.interval = 1.0  # type: ignore[misc]


class TestInterval:
    """Tests for interval parsing."""

    @pytest.mark.parametrize(
        ("value", "seconds"),
        [("100ms", 0.1), ("2s", 2.0), ("1m30s", 90.0), ("1h", 3600.0), ("250us", 0.00025)],
    )
    def test_parse_duration(self, value: str, seconds: float) -> None:
        """Duration strings are sums of number/unit parts."""
        assert parse_duration(value) == pytest.approx(seconds)

    @pytest.mark.parametrize("value", ["", "10", "ten seconds", "5s extra", "1d"])
    def test_parse_duration_rejects(self, value: str) -> None:
        """Unit-less numbers and unknown units are rejected."""
        with pytest.raises(ValueError):
            parse_duration(value)

    def test_interval_string_and_number(self) -> None:
        """The interval accepts duration strings and plain seconds."""
        assert TestCaseDefinition.model_validate({"interval": "500ms"}).interval == 0.5
        assert TestCaseDefinition.model_validate({"interval": 2}).interval == 2.0

    def test_default_polling_interval(self) -> None:
        """An unset or zero interval polls every 100ms."""
        assert TestCaseDefinition().polling_interval == DEFAULT_INTERVAL
        assert TestCaseDefinition(interval=0).polling_interval == DEFAULT_INTERVAL
        assert TestCaseDefinition(interval=0.5).polling_interval == 0.5

    def test_invalid_interval(self) -> None:
        """A malformed duration is a validation error."""
        with pytest.raises(ValidationError):
            TestCaseDefinition.model_validate({"interval": "soon"})


class TestMerge:
    """Tests for include merging."""

    def test_lists_are_concatenated_in_order(self) -> None:
        """Every list of the included definition follows the including one."""
        base = TestCaseDefinition.model_validate(
            {
                "input": [{"path": "/a"}],
                "matrix": [{"name": "one"}],
                "expected": {
                    "logs": [{"logql": "a", "regexp": "a"}],
                    "traces": [{"traceql": "a", "equals": "a"}],
                    "metrics": [{"promql": "a", "value": "> 0"}],
                    "profiles": [{"query": "a", "flamebearers": {"equals": "a"}}],
                    "custom-checks": [{"script": "a.sh"}],
                    "compose-logs": ["a"],
                },
            }
        )
        included = TestCaseDefinition.model_validate(
            {
                "input": [{"path": "/b"}],
                "matrix": [{"name": "two"}],
                "expected": {
                    "logs": [{"logql": "b", "regexp": "b"}],
                    "traces": [{"traceql": "b", "equals": "b"}],
                    "metrics": [{"promql": "b", "value": "> 0"}],
                    "profiles": [{"query": "b", "flamebearers": {"equals": "b"}}],
                    "custom-checks": [{"script": "b.sh"}],
                    "compose-logs": ["b"],
                },
            }
        )

        merged = base.merge(included)

        expected = merged.expected
        assert [i.path for i in merged.input] == ["/a", "/b"]
        assert [m.name for m in merged.matrix] == ["one", "two"]
        assert [x.logql for x in expected.logs] == ["a", "b"]
        assert [x.traceql for x in expected.traces] == ["a", "b"]
        assert [x.promql for x in expected.metrics] == ["a", "b"]
        assert [x.query for x in expected.profiles] == ["a", "b"]
        assert [x.script for x in expected.custom_checks] == ["a.sh", "b.sh"]
        assert expected.compose_logs == ["a", "b"]

    def test_deployment_prefers_including_definition(self) -> None:
        """The including definition's compose descriptor wins when set."""
        base = TestCaseDefinition.model_validate({"docker-compose": {"files": ["a.yml"]}})
        included = TestCaseDefinition.model_validate({"docker-compose": {"files": ["b.yml"]}})

        assert base.merge(included).docker_compose.files == ["a.yml"]  # type: ignore[union-attr]

    def test_deployment_falls_back_to_included(self) -> None:
        """Without its own descriptor the included one is used."""
        base = TestCaseDefinition()
        included = TestCaseDefinition.model_validate(
            {"docker-compose": {"files": ["b.yml"]}, "interval": "1s"}
        )

        merged = base.merge(included)

        assert merged.docker_compose is not None
        assert merged.docker_compose.files == ["b.yml"]
        assert merged.interval == 1.0

    def test_merge_does_not_mutate(self) -> None:
        """Merging returns a new definition."""
        base = TestCaseDefinition.model_validate({"input": [{"path": "/a"}]})
        base.merge(TestCaseDefinition.model_validate({"input": [{"path": "/b"}]}))

        assert len(base.input) == 1


class TestExpectedRange:
    """Tests for count range helpers."""

    def test_unset_count_is_one_or_more(self) -> None:
        """An unset count means at least one match."""
        signal = ExpectedLogs(logql="{}", regexp="x")

        assert signal.expect_absent is False
        assert signal.expected_range == ExpectedRange(min=1, max=0)

    def test_absence(self) -> None:
        """min=0, max=0 means the signal must be absent."""
        signal = ExpectedLogs(logql="{}", count=ExpectedRange(min=0, max=0))

        assert signal.expect_absent is True
        assert signal.expected_range.describe() == "exactly 0"

    @pytest.mark.parametrize(
        ("minimum", "maximum", "text"),
        [(3, 0, "at least 3"), (2, 2, "exactly 2"), (1, 100, "between 1 and 100")],
    )
    def test_describe(self, minimum: int, maximum: int, text: str) -> None:
        """Ranges describe themselves for mismatch messages."""
        assert ExpectedRange(min=minimum, max=maximum).describe() == text


class TestInputDefaults:
    """Tests for input defaults."""

    def test_defaults(self) -> None:
        """GET over http to localhost, expecting 200."""
        input = Input(path="/x")

        assert input.effective_method == "GET"
        assert input.effective_scheme == "http"
        assert input.effective_host == "localhost"
        assert input.expected_status == 200

    def test_normalization(self) -> None:
        """Method is upper-cased and scheme lower-cased."""
        input = Input(path="/x", method="post", scheme="HTTPS", host="app")

        assert input.effective_method == "POST"
        assert input.effective_scheme == "https"
        assert input.effective_host == "app"


class TestPorts:
    """Tests for PortConfig and TestCase ports."""

    def test_default_ports(self) -> None:
        """The default ports are the well-known backend ports."""
        ports = PortConfig()

        assert (
            ports.application_port,
            ports.grafana_http_port,
            ports.prometheus_http_port,
            ports.loki_http_port,
            ports.tempo_http_port,
            ports.pyroscope_http_port,
        ) == (8080, 3000, 9090, 3100, 3200, 4040)

    def test_as_env(self) -> None:
        """Ports are exported to custom check scripts as strings."""
        env = PortConfig(application_port=18080).as_env()

        assert env["APPLICATION_PORT"] == "18080"
        assert env["PROMETHEUS_HTTP_PORT"] == "9090"
        assert set(env) == {
            "APPLICATION_PORT",
            "GRAFANA_HTTP_PORT",
            "PROMETHEUS_HTTP_PORT",
            "LOKI_HTTP_PORT",
            "TEMPO_HTTP_PORT",
            "PYROSCOPE_HTTP_PORT",
        }

    def test_test_case_ports_default(self, tmp_path: Path) -> None:
        """A test case without assigned ports reports the defaults."""
        test_case = TestCase(
            name="run-oats",
            path=tmp_path / "oats.yaml",
            dir=tmp_path,
            definition=TestCaseDefinition(),
        )

        assert test_case.ports == PortConfig()
