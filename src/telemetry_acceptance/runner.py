"""Test case runner.

Runs the checks of one validated test case against an Endpoint. Every
expected signal becomes one independent check: a polling loop that, on each
iteration, drives the application with every configured input, queries the
relevant backend and matches the response. A check passes on the first
matching iteration and fails when the shared test case deadline passes.

Default check order:
    compose-logs, logs, traces, metrics, profiles, custom-checks

Logs and traces come before metrics because metric export intervals are
usually longer than log and trace ingestion latency. The order can be
overridden with ``check_order``.

Example:
    from telemetry_acceptance.endpoint import HttpEndpoint
    from telemetry_acceptance.runner import Runner

    with HttpEndpoint(test_case.ports) as endpoint:
        result = Runner(test_case, endpoint, settings).run()
    result.raise_for_failures()
"""

from __future__ import annotations

import os
import shutil
import subprocess
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path

import httpx
import structlog
from opentelemetry.trace import Status, StatusCode

from telemetry_acceptance import responses
from telemetry_acceptance.config import RunSettings
from telemetry_acceptance.endpoint import Endpoint
from telemetry_acceptance.errors import (
    AssertionMismatch,
    CheckFailedError,
    ConfigurationError,
    RetryableError,
    TransientQueryError,
)
from telemetry_acceptance.logging import QueryLogger, create_span
from telemetry_acceptance.matching import (
    compare_metric,
    match_name,
    match_signal,
    matches_matrix,
    replace_variables,
)
from telemetry_acceptance.polling import poll_until
from telemetry_acceptance.requests import create_client, send_inputs
from telemetry_acceptance.schemas.expectations import (
    CustomCheck,
    ExpectedLogs,
    ExpectedMetrics,
    ExpectedProfiles,
    ExpectedTraces,
)
from telemetry_acceptance.schemas.test_case import TestCase
from telemetry_acceptance.validation import validate_test_case

logger = structlog.get_logger(__name__)

HEARTBEAT_INTERVAL = 10.0
"""Seconds without success after which a waiting check logs its query loudly."""

MANUAL_DEBUG_INTERVAL = 1.0
"""Seconds between input rounds in manual debug mode."""


class CheckKind(str, Enum):
    """Signal type of a check."""

    COMPOSE_LOGS = "compose-logs"
    LOGS = "logs"
    TRACES = "traces"
    METRICS = "metrics"
    PROFILES = "profiles"
    CUSTOM = "custom-checks"


DEFAULT_CHECK_ORDER: tuple[CheckKind, ...] = (
    CheckKind.COMPOSE_LOGS,
    CheckKind.LOGS,
    CheckKind.TRACES,
    CheckKind.METRICS,
    CheckKind.PROFILES,
    CheckKind.CUSTOM,
)


@dataclass(frozen=True)
class Check:
    """One expected signal, ready to be polled.

    Attributes:
        kind: Signal type.
        description: What the check waits for, used in messages.
        query: The query (or script, or log substring) the check issues.
        assertion: Performs one query-and-match; raises RetryableError on "not yet".
        absent: True if the check expects the signal to be absent.
    """

    kind: CheckKind
    description: str
    query: str
    assertion: Callable[[], None]
    absent: bool = False


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check."""

    kind: CheckKind
    description: str
    query: str
    passed: bool
    iterations: int
    elapsed: float
    message: str = ""


@dataclass
class TestCaseResult:
    """Outcome of one test case.

    Attributes:
        name: Test case name.
        checks: Results of the checks that ran, in order.
        log_file: The per-test-case query log.
    """

    __test__ = False  # not a pytest test class

    name: str
    checks: list[CheckResult] = field(default_factory=list)
    log_file: Path | None = None

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def failures(self) -> list[CheckResult]:
        return [check for check in self.checks if not check.passed]

    def raise_for_failures(self) -> None:
        """Raise CheckFailedError if any check failed."""
        failures = self.failures
        if failures:
            raise CheckFailedError(self.name, [failure.message for failure in failures])


class Heartbeat:
    """Tells a waiting check when to log loudly, at most once per interval."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        interval: float = HEARTBEAT_INTERVAL,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self._last = clock()

    def reset(self) -> None:
        self._last = self._clock()

    def due(self) -> bool:
        now = self._clock()
        if now - self._last >= self.interval:
            self._last = now
            return True
        return False


def _with_context(
    error: AssertionMismatch, query: str, response: bytes | str | None
) -> AssertionMismatch:
    return AssertionMismatch(error.message, query=query, response=response)


class Runner:
    """Runs the checks of one test case.

    Args:
        test_case: The test case; validated (again) before anything starts.
        endpoint: Query access to the backends, started and stopped by the runner.
        settings: Run settings (fail-fast, verbosity, output directory).
        client: HTTP client for application inputs; one is created when omitted.
        check_order: Order of the check kinds.
        clock: Monotonic clock, injectable for tests.
        sleep: Sleep function, injectable for tests.
    """

    def __init__(
        self,
        test_case: TestCase,
        endpoint: Endpoint,
        settings: RunSettings | None = None,
        *,
        client: httpx.Client | None = None,
        check_order: Iterable[CheckKind] = DEFAULT_CHECK_ORDER,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.test_case = test_case
        self.endpoint = endpoint
        self.settings = settings or RunSettings()
        self.check_order = tuple(check_order)
        self._client = client
        self._clock = clock
        self._sleep = sleep
        self._query_logger = QueryLogger(verbose=self.settings.verbose)
        self._heartbeat = Heartbeat(clock)
        self._loud = False
        self._log = logger.bind(component="Runner", test_case=test_case.name)

    def prepare_output_dir(self) -> Path:
        """Recreate ``<output_root>/<name>`` and record it on the test case."""
        output_dir = self.settings.output_root / self.test_case.name
        if output_dir.is_dir():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        self.test_case.output_dir = output_dir
        return output_dir

    def run(self) -> TestCaseResult:
        """Validate, start the endpoint, run every check and stop the endpoint.

        Returns:
            The result; failed if any check failed.

        Raises:
            ConfigurationError: If the test case is invalid (before anything
                starts) or a check hits a configuration problem.
        """
        validate_test_case(self.test_case)
        output_dir = self.prepare_output_dir()
        log_path = output_dir / f"output-{self.test_case.name}.log"
        result = TestCaseResult(name=self.test_case.name, log_file=log_path)
        client = self._client or create_client()

        try:
            with (
                log_path.open("w", encoding="utf-8") as log_file,
                create_span("test_case", attributes={"test_case.name": self.test_case.name}),
            ):
                self._query_logger.output = log_file
                self._log.info("test_case_starting", log_file=str(log_path.resolve()))
                self.endpoint.start()
                self.test_case.deadline = self._clock() + self.test_case.timeout
                self._log.info("deadline_set", timeout=self.test_case.timeout)
                try:
                    if self.test_case.manual_debug:
                        self._manual_debug(client)
                    else:
                        self._run_checks(client, result)
                finally:
                    self.endpoint.stop()
        finally:
            self._query_logger.output = None
            if self._client is None:
                client.close()

        self._log.info(
            "test_case_finished",
            passed=result.passed,
            checks=len(result.checks),
            failures=len(result.failures),
        )
        return result

    def _run_checks(self, client: httpx.Client, result: TestCaseResult) -> None:
        checks = self.build_checks()
        for index, check in enumerate(checks):
            check_result = self.run_check(check, client)
            result.checks.append(check_result)
            if not check_result.passed and self.settings.fail_fast:
                remaining = len(checks) - index - 1
                if remaining:
                    self._log.warning("remaining_checks_skipped", count=remaining)
                break

    def remaining_time(self) -> float:
        """Seconds left until the test case deadline (the full timeout before ``run``)."""
        if self.test_case.deadline is None:
            return self.test_case.timeout
        return max(0.0, self.test_case.deadline - self._clock())

    def run_check(self, check: Check, client: httpx.Client) -> CheckResult:
        """Poll one check until it passes or the test case deadline passes.

        Each iteration issues every input first, then runs the assertion.
        Absence checks stop after at most the (shorter) absent timeout.
        """
        definition = self.test_case.definition
        deadline = self.remaining_time()
        if check.absent:
            deadline = min(deadline, self.test_case.absent_timeout)
        self._heartbeat.reset()
        self._log.info(
            "check_starting",
            kind=check.kind.value,
            check=check.description,
            timeout=deadline,
        )

        def attempt() -> None:
            self._loud = self._heartbeat.due()
            if self._loud:
                self._log.info("waiting_for_telemetry", check=check.description, query=check.query)
            send_inputs(client, definition.input, self.test_case.ports)
            check.assertion()

        def on_retry(iteration: int, elapsed: float, error: RetryableError) -> None:
            self._query_logger.write(f"iteration {iteration} after {elapsed:.1f}s: {error.message}")

        attributes = {"check.kind": check.kind.value, "check.query": check.query}
        with create_span("check", attributes=attributes) as span:
            poll = poll_until(
                attempt,
                deadline,
                definition.polling_interval,
                check.description,
                clock=self._clock,
                sleep=self._sleep,
                on_retry=on_retry,
            )
            span.set_attribute("check.iterations", poll.iterations)

            if poll.ok:
                self._log.info(
                    "check_passed",
                    check=check.description,
                    iterations=poll.iterations,
                    elapsed=round(poll.elapsed, 3),
                )
                return CheckResult(
                    kind=check.kind,
                    description=check.description,
                    query=check.query,
                    passed=True,
                    iterations=poll.iterations,
                    elapsed=poll.elapsed,
                )

            error = poll.to_error()
            span.set_status(Status(StatusCode.ERROR, f"deadline exceeded: {check.description}"))
            self._log.error("check_failed", check=check.description, error=str(error))
            return CheckResult(
                kind=check.kind,
                description=check.description,
                query=check.query,
                passed=False,
                iterations=poll.iterations,
                elapsed=poll.elapsed,
                message=str(error),
            )

    def _manual_debug(self, client: httpx.Client) -> None:
        ports = self.test_case.ports
        self._log.info(
            "manual_debug_started",
            grafana_url=f"http://localhost:{ports.grafana_http_port}",
        )
        try:
            while True:
                try:
                    send_inputs(client, self.test_case.definition.input, ports)
                except TransientQueryError as e:
                    self._log.debug("input_failed", error=e.message)
                self._sleep(MANUAL_DEBUG_INTERVAL)
        except KeyboardInterrupt:
            self._log.info("manual_debug_stopped")

    # Check construction

    def _applies(self, condition: str | None, description: str) -> bool:
        if matches_matrix(condition, self.test_case.matrix_variant):
            return True
        self._log.debug(
            "check_skipped",
            check=description,
            matrix_condition=condition,
            matrix_variant=self.test_case.matrix_variant,
        )
        return False

    def build_checks(self) -> list[Check]:
        """Build the checks of the test case in ``check_order``.

        Expectations whose matrix condition does not match the active
        variant are left out.
        """
        builders: dict[CheckKind, Callable[[], list[Check]]] = {
            CheckKind.COMPOSE_LOGS: self._compose_log_checks,
            CheckKind.LOGS: self._log_checks,
            CheckKind.TRACES: self._trace_checks,
            CheckKind.METRICS: self._metric_checks,
            CheckKind.PROFILES: self._profile_checks,
            CheckKind.CUSTOM: self._custom_checks,
        }
        checks: list[Check] = []
        for kind in self.check_order:
            checks.extend(builders[kind]())
        return checks

    def _compose_log_checks(self) -> list[Check]:
        return [
            Check(
                kind=CheckKind.COMPOSE_LOGS,
                description=f"compose logs containing {message!r}",
                query=message,
                assertion=partial(self.assert_compose_log, message),
            )
            for message in self.test_case.definition.expected.compose_logs
        ]

    def _log_checks(self) -> list[Check]:
        checks = []
        for logs in self.test_case.definition.expected.logs:
            if logs.expect_absent:
                description = f"no logs for {logs.logql!r}"
            else:
                description = f"logs matching {logs.describe_name()}"
            if self._applies(logs.matrix_condition, description):
                checks.append(
                    Check(
                        kind=CheckKind.LOGS,
                        description=description,
                        query=logs.logql,
                        assertion=partial(self.assert_logs, logs),
                        absent=logs.expect_absent,
                    )
                )
        return checks

    def _trace_checks(self) -> list[Check]:
        checks = []
        for traces in self.test_case.definition.expected.traces:
            if traces.expect_absent:
                description = f"no spans for {traces.traceql!r}"
            else:
                description = f"spans matching {traces.describe_name()}"
            if self._applies(traces.matrix_condition, description):
                checks.append(
                    Check(
                        kind=CheckKind.TRACES,
                        description=description,
                        query=traces.traceql,
                        assertion=partial(self.assert_traces, traces),
                        absent=traces.expect_absent,
                    )
                )
        return checks

    def _metric_checks(self) -> list[Check]:
        checks = []
        for metrics in self.test_case.definition.expected.metrics:
            description = f"metric {metrics.promql!r} {metrics.value}"
            if self._applies(metrics.matrix_condition, description):
                checks.append(
                    Check(
                        kind=CheckKind.METRICS,
                        description=description,
                        query=replace_variables(metrics.promql),
                        assertion=partial(self.assert_metrics, metrics),
                    )
                )
        return checks

    def _profile_checks(self) -> list[Check]:
        checks = []
        for profiles in self.test_case.definition.expected.profiles:
            flamebearers = profiles.flamebearers
            wanted = repr(flamebearers.equals) if flamebearers.equals else flamebearers.regexp
            description = f"profile with flamebearer {wanted}"
            if self._applies(profiles.matrix_condition, description):
                checks.append(
                    Check(
                        kind=CheckKind.PROFILES,
                        description=description,
                        query=profiles.query,
                        assertion=partial(self.assert_profiles, profiles),
                    )
                )
        return checks

    def _custom_checks(self) -> list[Check]:
        checks = []
        for custom in self.test_case.definition.expected.custom_checks:
            description = f"custom check {custom.script}"
            if self._applies(custom.matrix_condition, description):
                checks.append(
                    Check(
                        kind=CheckKind.CUSTOM,
                        description=description,
                        query=custom.script,
                        assertion=partial(self.assert_custom_check, custom),
                    )
                )
        return checks

    # Assertions: one query-and-match each, raising RetryableError on "not yet"

    def _query(self, query: str, call: Callable[[], bytes]) -> bytes:
        try:
            body = call()
        except TransientQueryError as e:
            self._query_logger.log_query(query, e.response, e, force=self._loud)
            raise
        self._query_logger.log_query(query, body, force=self._loud)
        return body

    def assert_compose_log(self, message: str) -> None:
        found = self.endpoint.search_compose_logs(message)
        self._query_logger.log_query(
            f"compose logs {message!r}", f"found={found}", force=self._loud
        )
        if not found:
            raise AssertionMismatch(f"compose logs do not contain {message!r}", query=message)

    def assert_logs(self, logs: ExpectedLogs) -> None:
        body = self._query(logs.logql, partial(self.endpoint.search_logs, logs.logql))
        records = responses.parse_log_lines(body, logs.logql)
        try:
            match_signal(logs, records)
        except AssertionMismatch as e:
            raise _with_context(e, logs.logql, body) from e

    def assert_traces(self, traces: ExpectedTraces) -> None:
        search_body = self._query(
            traces.traceql, partial(self.endpoint.search_traces, traces.traceql)
        )
        trace_ids = responses.parse_trace_ids(search_body, traces.traceql)
        bodies = [search_body]
        spans = []
        for trace_id in trace_ids:
            fetch = partial(self.endpoint.get_trace_by_id, trace_id)
            body = self._query(f"trace {trace_id}", fetch)
            bodies.append(body)
            spans.extend(responses.parse_trace_spans(body, traces.traceql))
        try:
            match_signal(traces, spans)
        except AssertionMismatch as e:
            # search response first, then every fetched trace
            raise _with_context(e, traces.traceql, b"\n".join(bodies)) from e

    def assert_metrics(self, metrics: ExpectedMetrics) -> None:
        promql = replace_variables(metrics.promql)
        body = self._query(promql, partial(self.endpoint.run_promql, promql))
        values = responses.parse_metric_values(body, promql)
        if len(values) != 1:
            raise AssertionMismatch(
                f"expected exactly 1 sample, found {len(values)}", query=promql, response=body
            )
        try:
            compare_metric(metrics.value, values[0])
        except AssertionMismatch as e:
            raise _with_context(e, promql, body) from e

    def assert_profiles(self, profiles: ExpectedProfiles) -> None:
        body = self._query(profiles.query, partial(self.endpoint.search_profiles, profiles.query))
        names = responses.parse_flamebearer_names(body, profiles.query)
        flamebearers = profiles.flamebearers
        try:
            match_name(flamebearers.equals, flamebearers.regexp, names)
        except AssertionMismatch as e:
            raise _with_context(e, profiles.query, body) from e

    def assert_custom_check(self, custom: CustomCheck) -> None:
        script = Path(custom.script)
        if not script.is_absolute():
            script = self.test_case.dir / script
        self._query_logger.write(f"running custom check {custom.script}")
        env = {**os.environ, **self.test_case.ports.as_env()}
        try:
            completed = subprocess.run(
                [str(script)],
                cwd=self.test_case.dir,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.test_case.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise AssertionMismatch(
                f"custom check {custom.script} timed out after {e.timeout:.0f}s",
                query=custom.script,
            ) from e
        except OSError as e:
            raise ConfigurationError(f"cannot execute custom check {custom.script}: {e}") from e

        output = completed.stdout + completed.stderr
        self._query_logger.log_query(
            custom.script, output, f"exit status {completed.returncode}", force=self._loud
        )
        if completed.returncode != 0:
            raise AssertionMismatch(
                f"custom check {custom.script} exited with status {completed.returncode}",
                query=custom.script,
                response=output,
            )


__all__ = [
    "DEFAULT_CHECK_ORDER",
    "HEARTBEAT_INTERVAL",
    "Check",
    "CheckKind",
    "CheckResult",
    "Heartbeat",
    "Runner",
    "TestCaseResult",
]
