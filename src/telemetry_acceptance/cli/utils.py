"""CLI utility functions and error handling.

This module provides shared utilities for the telemetry-acceptance CLI:
- Exit code constants
- Output helpers for consistent stderr/stdout usage

Example:
    from telemetry_acceptance.cli.utils import error_exit, ExitCode

    if not cases:
        error_exit("No test cases found", exit_code=ExitCode.FILE_NOT_FOUND, path=str(path))
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Exit codes for CLI commands, meaningful to CI pipelines."""

    SUCCESS = 0
    """Command completed successfully."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    USAGE_ERROR = 2
    """Invalid usage (bad arguments, missing required options)."""

    FILE_NOT_FOUND = 3
    """Required file or directory not found."""

    VALIDATION_ERROR = 5
    """A test case definition is invalid."""

    CHECK_FAILED = 6
    """At least one test case failed a check."""


def _format(prefix: str, message: str, context: dict[str, str | int | bool | None]) -> str:
    context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    if context_str:
        return f"{prefix}{message} ({context_str})"
    return f"{prefix}{message}"


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Test case failed", name="run-oats")
        # Output: Error: Test case failed (name=run-oats)
    """
    click.echo(_format("Error: ", message, context), err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    click.echo(_format("Warning: ", message, context), err=True)


def success(message: str) -> None:
    """Print a success message to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print an informational message to stderr.

    Used for progress updates that should not be captured by stdout
    redirection.
    """
    click.echo(message, err=True)


__all__ = [
    "ExitCode",
    "error",
    "error_exit",
    "info",
    "success",
    "warn",
]
