"""Test case commands: run, validate and list.

Every command discovers test cases below PATH (or the configured base
path), so ``validate`` and ``list`` show exactly what ``run`` would run.

Example:
    $ telemetry-acceptance run tests/acceptance
    $ telemetry-acceptance validate tests/acceptance --random-ports
    $ telemetry-acceptance list tests/acceptance
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click
import structlog
from pydantic import ValidationError

from telemetry_acceptance.cli.utils import ExitCode, error, error_exit, info, success, warn
from telemetry_acceptance.config import RunSettings
from telemetry_acceptance.endpoint import HttpEndpoint, PortAllocator
from telemetry_acceptance.errors import ConfigurationError
from telemetry_acceptance.loader import read_test_cases
from telemetry_acceptance.logging import configure_logging
from telemetry_acceptance.runner import Runner, TestCaseResult
from telemetry_acceptance.schemas.test_case import TestCase
from telemetry_acceptance.validation import validate_test_case

logger = structlog.get_logger(__name__)

_PATH_ARGUMENT = click.argument(
    "path",
    required=False,
    type=click.Path(path_type=Path),
)
_RANDOM_PORTS_OPTION = click.option(
    "--random-ports",
    is_flag=True,
    default=False,
    help="Allocate free host ports per test case instead of the default ports.",
)


def _load_settings(ctx: click.Context, **overrides: Any) -> RunSettings:
    """Build run settings from the environment and the given CLI options.

    Options left unset (None) keep the environment or default value.
    Logging is configured from the resulting settings.
    """
    merged = {**(ctx.obj or {}).get("overrides", {}), **overrides}
    try:
        settings = RunSettings(**{k: v for k, v in merged.items() if v is not None})
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        error_exit(f"Invalid settings: {details}", exit_code=ExitCode.USAGE_ERROR)
    configure_logging(settings.log_level, settings.log_json)
    return settings


def _print_configuration_error(e: ConfigurationError) -> None:
    error(str(e).splitlines()[0])
    for detail in e.errors:
        click.echo(f"  - {detail}", err=True)


def _discover(
    settings: RunSettings,
    path: Path | None,
    random_ports: bool = False,
) -> list[TestCase]:
    """Discover test cases and assign their ports.

    Exits with FILE_NOT_FOUND for a missing path and VALIDATION_ERROR if a
    definition cannot be loaded.
    """
    base = path if path is not None else settings.base_path
    if not base.exists():
        error_exit("Test case path not found", exit_code=ExitCode.FILE_NOT_FOUND, path=str(base))
    try:
        cases = read_test_cases(
            base,
            timeout=settings.timeout,
            absent_timeout=settings.absent_timeout,
            manual_debug=settings.manual_debug,
        )
    except ConfigurationError as e:
        _print_configuration_error(e)
        raise SystemExit(ExitCode.VALIDATION_ERROR) from e

    if random_ports and cases:
        allocator = PortAllocator(len(cases))
        for test_case in cases:
            test_case.port_config = allocator.allocate_ports()
    return cases


def _validate_all(cases: list[TestCase]) -> list[ConfigurationError]:
    """Validate every test case; collect failures instead of stopping."""
    failures = []
    for test_case in cases:
        try:
            validate_test_case(test_case)
        except ConfigurationError as e:
            failures.append(e)
    return failures


def _report(result: TestCaseResult) -> None:
    if result.passed:
        success(f"PASS {result.name} ({len(result.checks)} checks)")
        return
    error(f"FAIL {result.name}", log_file=str(result.log_file) if result.log_file else None)
    for failure in result.failures:
        click.echo(f"  [{failure.kind.value}] {failure.description}", err=True)
        for line in failure.message.splitlines():
            click.echo(f"    {line}", err=True)


@click.command(
    name="run",
    help="Run test cases against an already provisioned observability stack.",
    epilog="""
Examples:
    $ telemetry-acceptance run tests/acceptance
    $ telemetry-acceptance run tests/acceptance/oats.yaml --timeout 2m
    $ telemetry-acceptance run --no-fail-fast --output-root build/acceptance
""",
)
@_PATH_ARGUMENT
@click.option(
    "--timeout",
    type=str,
    default=None,
    metavar="DURATION",
    help="Deadline for checks expecting a signal, e.g. 30s or 2m.",
)
@click.option(
    "--absent-timeout",
    type=str,
    default=None,
    metavar="DURATION",
    help="Deadline for checks expecting no signal, e.g. 10s.",
)
@click.option(
    "--fail-fast/--no-fail-fast",
    default=None,
    help="Stop a test case at its first failed check (default: on).",
)
@click.option(
    "--manual-debug/--no-manual-debug",
    default=None,
    help="Keep feeding inputs until interrupted instead of checking.",
)
@click.option(
    "--output-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    metavar="DIR",
    help="Directory receiving one output directory per test case.",
)
@_RANDOM_PORTS_OPTION
@click.pass_context
def run_command(
    ctx: click.Context,
    path: Path | None,
    timeout: str | None,
    absent_timeout: str | None,
    fail_fast: bool | None,
    manual_debug: bool | None,
    output_root: Path | None,
    random_ports: bool,
) -> None:
    """Run every discovered test case.

    All test cases are validated before the first one runs; any invalid
    definition aborts the run with VALIDATION_ERROR.
    """
    settings = _load_settings(
        ctx,
        timeout=timeout,
        absent_timeout=absent_timeout,
        fail_fast=fail_fast,
        manual_debug=manual_debug,
        output_root=output_root,
    )
    cases = _discover(settings, path, random_ports)
    if not cases:
        warn("No test cases found", path=str(path or settings.base_path))
        return

    invalid = _validate_all(cases)
    if invalid:
        for e in invalid:
            _print_configuration_error(e)
        error_exit(
            f"{len(invalid)} of {len(cases)} test cases are invalid",
            exit_code=ExitCode.VALIDATION_ERROR,
        )

    results = []
    for test_case in cases:
        info(f"Running {test_case.name}...")
        with HttpEndpoint(test_case.ports) as endpoint:
            try:
                result = Runner(test_case, endpoint, settings).run()
            except ConfigurationError as e:
                _print_configuration_error(e)
                raise SystemExit(ExitCode.VALIDATION_ERROR) from e
        _report(result)
        results.append(result)

    failed = [result.name for result in results if not result.passed]
    logger.info("run_finished", test_cases=len(results), failed=len(failed))
    if failed:
        error_exit(
            f"{len(failed)} of {len(results)} test cases failed",
            exit_code=ExitCode.CHECK_FAILED,
            failed=", ".join(failed),
        )
    success(f"All {len(results)} test cases passed")


@click.command(
    name="validate",
    help="Validate test case definitions without running them.",
    epilog="""
Examples:
    $ telemetry-acceptance validate tests/acceptance
    $ telemetry-acceptance validate tests/acceptance/oats.yaml
""",
)
@_PATH_ARGUMENT
@_RANDOM_PORTS_OPTION
@click.pass_context
def validate_command(ctx: click.Context, path: Path | None, random_ports: bool) -> None:
    """Validate every discovered test case and report all failures."""
    settings = _load_settings(ctx)
    cases = _discover(settings, path, random_ports)
    invalid = _validate_all(cases)
    for e in invalid:
        _print_configuration_error(e)
    if invalid:
        error_exit(
            f"{len(invalid)} of {len(cases)} test cases are invalid",
            exit_code=ExitCode.VALIDATION_ERROR,
        )
    for test_case in cases:
        success(f"OK {test_case.name}")


@click.command(
    name="list",
    help="List discovered test cases.",
    epilog="""
Examples:
    $ telemetry-acceptance list tests/acceptance
""",
)
@_PATH_ARGUMENT
@click.pass_context
def list_command(ctx: click.Context, path: Path | None) -> None:
    """Print one line per test case: name, matrix variant and file."""
    settings = _load_settings(ctx)
    for test_case in _discover(settings, path):
        variant = test_case.matrix_variant or "-"
        success(f"{test_case.name}\t{variant}\t{test_case.path}")


__all__ = ["list_command", "run_command", "validate_command"]
