"""Signal matching and metric comparison.

Pure functions that decide whether found telemetry satisfies an expectation.
Found items are normalized to Record(name, attributes) by the response
decoders before they reach this module.

Functions:
    match_signal: Filter records by name, check the count range and attributes
    check_count: Apply the count-range policy to a number of matches
    matches_matrix: Decide whether an expectation applies to a matrix variant
    compare_metric: Compare a metric value against a "<op> <number>" expression
    replace_variables: Replace dashboard variables in PromQL with ".*"

Example:
    >>> from telemetry_acceptance.schemas import ExpectedSignal
    >>> signal = ExpectedSignal(equals="GET /vets.html")
    >>> match_signal(signal, [Record("GET /vets.html", {})])
    [Record(name='GET /vets.html', attributes={})]
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from telemetry_acceptance.errors import AssertionMismatch, ConfigurationError
from telemetry_acceptance.schemas.expectations import ExpectedRange, ExpectedSignal

PROMQL_VARIABLES = ("$job", "$instance", "$pod", "$namespace", "$container")
"""Dashboard template variables replaced by a wildcard before querying."""

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


@dataclass(frozen=True)
class Record:
    """A normalized telemetry item: a log line, a span, a flamebearer name.

    Attributes:
        name: Log line, span name or flamebearer name.
        attributes: Labels / attributes, stringified.
    """

    name: str
    attributes: Mapping[str, str] = field(default_factory=dict)


def compile_pattern(pattern: str, what: str = "regexp") -> re.Pattern[str]:
    """Compile a user-supplied regular expression.

    Args:
        pattern: The pattern from the test case definition.
        what: Which field the pattern came from, for the error message.

    Returns:
        Compiled pattern.

    Raises:
        ConfigurationError: If the pattern does not compile. Never retried.
    """
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"invalid {what} {pattern!r}: {e}") from e


def name_matches(signal: ExpectedSignal, name: str) -> bool:
    """Check a record name against the signal's equals/regexp constraints.

    Both constraints apply when both are set; no constraint matches any name.
    """
    if signal.equals and name != signal.equals:
        return False
    if signal.regexp and compile_pattern(signal.regexp).search(name) is None:
        return False
    return True


def filter_records(signal: ExpectedSignal, found: Sequence[Record]) -> list[Record]:
    """Return the records whose name satisfies the signal, in order."""
    return [record for record in found if name_matches(signal, record.name)]


def check_count(expected: ExpectedRange, count: int) -> None:
    """Apply the count-range policy.

    Args:
        expected: Effective range (see ExpectedSignal.expected_range).
        count: Number of matching records.

    Raises:
        AssertionMismatch: If count is outside the range.
    """
    if expected.is_absence:
        if count != 0:
            noun = "match" if count == 1 else "matches"
            raise AssertionMismatch(f"expected no matches, found {count} unexpected {noun}")
        return
    if count < expected.min or (expected.max != 0 and count > expected.max):
        raise AssertionMismatch(f"expected {expected.describe()} matches, found {count}")


def check_attributes(signal: ExpectedSignal, record: Record) -> None:
    """Check a representative record's attributes against the signal.

    Raises:
        AssertionMismatch: On the first attribute that does not match.
    """
    attributes = record.attributes
    for key, want in signal.attributes.items():
        if key not in attributes:
            raise AssertionMismatch(
                f"attribute {key!r} missing on {record.name!r}, expected {want!r}"
            )
        if attributes[key] != want:
            raise AssertionMismatch(
                f"attribute {key!r} on {record.name!r}: expected {want!r}, got {attributes[key]!r}"
            )
    for key, pattern in signal.attribute_regexp.items():
        if key not in attributes:
            raise AssertionMismatch(
                f"attribute {key!r} missing on {record.name!r}, expected to match {pattern!r}"
            )
        if compile_pattern(pattern, "attribute-regexp").search(attributes[key]) is None:
            raise AssertionMismatch(
                f"attribute {key!r} on {record.name!r}: {attributes[key]!r} "
                f"does not match {pattern!r}"
            )
    if signal.no_extra_attributes:
        allowed = set(signal.attributes) | set(signal.attribute_regexp)
        actual = set(attributes)
        if actual != allowed:
            extra = sorted(actual - allowed)
            missing = sorted(allowed - actual)
            raise AssertionMismatch(
                f"attributes of {record.name!r} do not match exactly: "
                f"unexpected {extra}, missing {missing}"
            )


def match_signal(signal: ExpectedSignal, found: Sequence[Record]) -> list[Record]:
    """Match found records against an expected signal.

    1. Filter records by name (equals / regexp).
    2. Check the number of matches against the count range.
    3. Unless the signal is expected absent, check the attributes of the
       first match. Duplicates are not disambiguated.

    Args:
        signal: The expectation.
        found: Normalized records returned by the backend.

    Returns:
        The matching records.

    Raises:
        AssertionMismatch: If the count or the attributes do not match.
        ConfigurationError: If a pattern does not compile.
    """
    matches = filter_records(signal, found)
    check_count(signal.expected_range, len(matches))
    if signal.expect_absent:
        return matches
    check_attributes(signal, matches[0])
    return matches


def match_name(equals: str | None, regexp: str | None, names: Sequence[str]) -> str:
    """Find a name satisfying equals or regexp, used for flamebearer names.

    Args:
        equals: Exact name, or None.
        regexp: Name pattern, or None.
        names: Candidate names.

    Returns:
        The first matching name.

    Raises:
        AssertionMismatch: If no name matches.
    """
    pattern = compile_pattern(regexp) if regexp else None
    for name in names:
        if equals and name == equals:
            return name
        if pattern is not None and pattern.search(name):
            return name
    wanted = repr(equals) if equals else f"regexp {regexp!r}"
    raise AssertionMismatch(f"no name matching {wanted} among {len(names)} names")


def matches_matrix(condition: str | None, variant: str | None) -> bool:
    """Decide whether a matrix-conditioned expectation applies.

    Args:
        condition: The expectation's matrix condition (None/empty = always).
        variant: Name of the active matrix variant (None = no matrix).

    Returns:
        True if the expectation applies to the active variant.
    """
    if not condition:
        return True
    return condition == variant


def parse_comparator(expression: str) -> tuple[str, float]:
    """Parse a ``"<op> <number>"`` comparator expression.

    Args:
        expression: e.g. ``"> 0"`` or ``"== 1"``.

    Returns:
        Tuple of (operator, number).

    Raises:
        ConfigurationError: If the expression is malformed.
    """
    parts = expression.split()
    if len(parts) != 2:
        raise ConfigurationError(
            f"invalid metric value {expression!r}: expected '<comparator> <number>', e.g. '> 0'"
        )
    op, raw = parts
    if op not in COMPARATORS:
        raise ConfigurationError(
            f"invalid comparator {op!r} in {expression!r}: expected one of {', '.join(COMPARATORS)}"
        )
    try:
        number = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"invalid number {raw!r} in {expression!r}") from e
    return op, number


def compare_metric(expression: str, actual: float) -> None:
    """Compare a metric value against a comparator expression.

    Args:
        expression: e.g. ``"> 0"``.
        actual: The value returned by the query engine.

    Raises:
        ConfigurationError: If the expression is malformed.
        AssertionMismatch: If the comparison does not hold.
    """
    op, expected = parse_comparator(expression)
    if not COMPARATORS[op](actual, expected):
        raise AssertionMismatch(f"expected value {op} {expected:g}, got {actual:g}")


def replace_variables(promql: str) -> str:
    """Replace dashboard variables (``$job``, ``$pod``, ...) with ``.*``."""
    for variable in PROMQL_VARIABLES:
        promql = promql.replace(variable, ".*")
    return promql


__all__ = [
    "COMPARATORS",
    "PROMQL_VARIABLES",
    "Record",
    "check_attributes",
    "check_count",
    "compare_metric",
    "compile_pattern",
    "filter_records",
    "match_name",
    "match_signal",
    "matches_matrix",
    "name_matches",
    "parse_comparator",
    "replace_variables",
]
