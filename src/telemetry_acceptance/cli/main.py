"""Main entry point for the telemetry-acceptance CLI.

Commands:
    telemetry-acceptance run: Run test cases against the observability stack
    telemetry-acceptance validate: Validate test case definitions
    telemetry-acceptance list: List discovered test cases

Example:
    $ telemetry-acceptance --help
    $ telemetry-acceptance run tests/acceptance --timeout 1m
    $ telemetry-acceptance --log-level DEBUG validate tests/acceptance/oats.yaml
"""

from __future__ import annotations

import sys
from importlib.metadata import version as get_version

import click

from telemetry_acceptance.cli.commands import list_command, run_command, validate_command


def _get_version() -> str:
    """Get the telemetry-acceptance package version.

    Returns:
        Version string from package metadata, or 'unknown' if not installed.
    """
    try:
        return get_version("telemetry-acceptance")
    except Exception:
        return "unknown"


@click.group(
    name="telemetry-acceptance",
    help="telemetry-acceptance - Acceptance tests for observability pipelines.",
    epilog="Use 'telemetry-acceptance <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="telemetry-acceptance",
    message="%(prog)s %(version)s",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Minimum log level (env: TELEMETRY_ACCEPTANCE_LOG_LEVEL).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Emit JSON logs (env: TELEMETRY_ACCEPTANCE_LOG_JSON).",
)
@click.option(
    "--verbose/--no-verbose",
    "-v",
    default=None,
    help="Log every query and response (env: TELEMETRY_ACCEPTANCE_VERBOSE).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: str | None,
    log_json: bool | None,
    verbose: bool | None,
) -> None:
    """Root command group.

    Global options are kept in the context object and merged with the
    command options when the run settings are built.
    """
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "log_level": log_level,
        "log_json": log_json,
        "verbose": verbose,
    }


cli.add_command(run_command)
cli.add_command(validate_command)
cli.add_command(list_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the telemetry-acceptance CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
