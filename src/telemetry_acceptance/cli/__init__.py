"""Command-line interface for telemetry-acceptance.

Commands:
    telemetry-acceptance run: Run test cases against the observability stack
    telemetry-acceptance validate: Validate test case definitions
    telemetry-acceptance list: List discovered test cases

Example:
    $ telemetry-acceptance --help
    $ telemetry-acceptance --version
    $ telemetry-acceptance run tests/acceptance

Exit Codes:
    0: Success
    1: General error
    2: Usage error (invalid arguments or settings)
    3: File not found
    5: Validation error
    6: Check failed
"""

from __future__ import annotations

from telemetry_acceptance.cli.main import cli, main
from telemetry_acceptance.cli.utils import ExitCode, error, error_exit, success, warn

__all__: list[str] = [
    # Entry points
    "main",
    "cli",
    # Utilities
    "ExitCode",
    "error",
    "error_exit",
    "warn",
    "success",
]
