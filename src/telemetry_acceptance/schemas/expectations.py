"""Expectation models for telemetry signals.

This module provides Pydantic models describing what must be found in each
telemetry signal type: logs, traces, metrics, profiles, plus custom check
scripts. YAML keys are kebab-case (``attribute-regexp``,
``no-extra-attributes``, ``matrix-condition``); Python code may use either the
alias or the field name.

Count-range policy (ExpectedSignal.count):
    count unset         -> 1 or more matches
    min=0, max=0        -> exactly 0 matches (absence)
    min=0, max>0        -> invalid (rejected by validation)
    min>0, max=0        -> at least min matches
    min>0, max>=min     -> between min and max, inclusive

Example:
    >>> signal = ExpectedLogs.model_validate(
    ...     {"logql": '{service_name="dice"}', "regexp": "rolling the dice"}
    ... )
    >>> signal.expect_absent
    False
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    populate_by_name=True,
    coerce_numbers_to_str=True,
)


class ExpectedRange(BaseModel):
    """Inclusive range of expected matches.

    ``max == 0`` means "no upper bound" unless ``min`` is also 0, which means
    the signal is expected to be absent.

    Attributes:
        min: Minimum number of matches.
        max: Maximum number of matches (0 = unbounded).
    """

    model_config = _MODEL_CONFIG

    min: int = Field(default=0, description="Minimum number of matches")
    max: int = Field(default=0, description="Maximum number of matches (0 = unbounded)")

    @property
    def is_absence(self) -> bool:
        """True when the range demands exactly zero matches."""
        return self.min == 0 and self.max == 0

    def describe(self) -> str:
        """Human-readable form used in mismatch messages."""
        if self.is_absence:
            return "exactly 0"
        if self.max == 0:
            return f"at least {self.min}"
        if self.min == self.max:
            return f"exactly {self.min}"
        return f"between {self.min} and {self.max}"


class ExpectedSignal(BaseModel):
    """Matching rules for a named, attributed telemetry record.

    Embedded inline in ExpectedLogs and ExpectedTraces.

    Attributes:
        equals: Exact record name.
        regexp: Record name pattern.
        attributes: Exact attribute key/value requirements.
        attribute_regexp: Attribute key/pattern requirements.
        no_extra_attributes: Matched record must carry no other attributes.
        matrix_condition: Restricts the expectation to matching matrix variants.
        count: Expected number of matches, see module docstring.
        contains: Deprecated, rejected by validation. Use ``regexp``.
    """

    model_config = _MODEL_CONFIG

    equals: str | None = Field(default=None, description="Exact record name")
    regexp: str | None = Field(default=None, description="Record name pattern")
    attributes: dict[str, str] = Field(
        default_factory=dict,
        description="Exact attribute key/value requirements",
    )
    attribute_regexp: dict[str, str] = Field(
        default_factory=dict,
        alias="attribute-regexp",
        description="Attribute key/pattern requirements",
    )
    no_extra_attributes: bool = Field(
        default=False,
        alias="no-extra-attributes",
        description="Reject records carrying attributes beyond the expected keys",
    )
    matrix_condition: str | None = Field(
        default=None,
        alias="matrix-condition",
        description="Name of the matrix variant this expectation applies to",
    )
    count: ExpectedRange | None = Field(default=None, description="Expected match count")
    contains: list[str] | None = Field(
        default=None,
        description="Deprecated: use 'regexp' instead",
    )

    @property
    def expect_absent(self) -> bool:
        """True when the signal must not be found at all (count min=0, max=0)."""
        return self.count is not None and self.count.is_absence

    @property
    def expected_range(self) -> ExpectedRange:
        """Effective range; an unset count means "1 or more"."""
        if self.count is None:
            return ExpectedRange(min=1, max=0)
        return self.count

    def describe_name(self) -> str:
        """Short description of the name constraint for log messages."""
        if self.equals and self.regexp:
            return f"{self.equals!r} (regexp {self.regexp!r})"
        if self.equals:
            return repr(self.equals)
        if self.regexp:
            return f"regexp {self.regexp!r}"
        return "any"


class ExpectedLogs(ExpectedSignal):
    """Expected log lines returned by a LogQL query.

    Attributes:
        logql: LogQL query sent to the log store.
    """

    logql: str = Field(default="", description="LogQL query")


class ExpectedSpan(BaseModel):
    """Deprecated span-list entry; rejected by validation."""

    model_config = _MODEL_CONFIG

    name: str = ""


class ExpectedTraces(ExpectedSignal):
    """Expected spans in traces returned by a TraceQL query.

    Attributes:
        traceql: TraceQL search query sent to the trace store.
        spans: Deprecated span list, rejected by validation.
    """

    traceql: str = Field(default="", description="TraceQL query")
    spans: list[ExpectedSpan] | None = Field(
        default=None,
        description="Deprecated: add span expectations to 'traces' directly",
    )


class ExpectedMetrics(BaseModel):
    """Expected PromQL result.

    Attributes:
        promql: PromQL instant query; dashboard variables are replaced with ``.*``.
        value: Comparator expression, e.g. ``"> 0"``.
        matrix_condition: Restricts the expectation to matching matrix variants.
    """

    model_config = _MODEL_CONFIG

    promql: str = Field(default="", description="PromQL query")
    value: str = Field(default="", description="Comparator expression, e.g. '> 0'")
    matrix_condition: str | None = Field(default=None, alias="matrix-condition")


class Flamebearers(BaseModel):
    """Flamebearer name constraint for profile expectations."""

    model_config = _MODEL_CONFIG

    equals: str | None = None
    regexp: str | None = None
    contains: str | None = Field(default=None, description="Deprecated: use 'regexp' instead")


class ExpectedProfiles(BaseModel):
    """Expected profile returned by a profile query.

    Attributes:
        query: Profile query sent to the profile store.
        flamebearers: Name constraint; exactly one of equals/regexp.
        matrix_condition: Restricts the expectation to matching matrix variants.
    """

    model_config = _MODEL_CONFIG

    query: str = Field(default="", description="Profile query")
    flamebearers: Flamebearers = Field(default_factory=Flamebearers)
    matrix_condition: str | None = Field(default=None, alias="matrix-condition")


class CustomCheck(BaseModel):
    """A script that must exit successfully.

    Attributes:
        script: Path of the script, relative to the test case directory.
        matrix_condition: Restricts the check to matching matrix variants.
    """

    model_config = _MODEL_CONFIG

    script: str = Field(default="", description="Script path")
    matrix_condition: str | None = Field(default=None, alias="matrix-condition")


class Expected(BaseModel):
    """All expectations of a test case definition."""

    model_config = _MODEL_CONFIG

    compose_logs: list[str] = Field(default_factory=list, alias="compose-logs")
    logs: list[ExpectedLogs] = Field(default_factory=list)
    traces: list[ExpectedTraces] = Field(default_factory=list)
    metrics: list[ExpectedMetrics] = Field(default_factory=list)
    profiles: list[ExpectedProfiles] = Field(default_factory=list)
    custom_checks: list[CustomCheck] = Field(default_factory=list, alias="custom-checks")

    @property
    def signal_count(self) -> int:
        """Number of log, trace, metric and profile expectations."""
        return len(self.logs) + len(self.traces) + len(self.metrics) + len(self.profiles)


__all__ = [
    "CustomCheck",
    "Expected",
    "ExpectedLogs",
    "ExpectedMetrics",
    "ExpectedProfiles",
    "ExpectedRange",
    "ExpectedSignal",
    "ExpectedSpan",
    "ExpectedTraces",
    "Flamebearers",
]
