"""CLI entry point using Click."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from chronotrace import __version__
from chronotrace.api import trace_file
from chronotrace.errors import ChronotraceError
from chronotrace.logger import setup_logging
from chronotrace.tracing.writer import load_trace


@click.group()
@click.version_option(__version__, prog_name="chronotrace")
def main() -> None:
    """Chronotrace - record program execution for offline review."""


@main.command("run", context_settings={"ignore_unknown_options": True})
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("script_args", nargs=-1, type=click.UNPROCESSED)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Trace file to write (default: <script>.trace)")
@click.option("--root", "roots", multiple=True,
              help="Application root directory, relative to the current directory (repeatable)")
@click.option("--include-dependencies", is_flag=True, help="Record calls into installed packages")
@click.option("--include-stdlib", is_flag=True, help="Record calls into the standard library")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write logs to this file instead of stderr")
def run_command(
    script: Path,
    script_args: tuple[str, ...],
    output: Path | None,
    roots: tuple[str, ...],
    include_dependencies: bool,
    include_stdlib: bool,
    debug: bool,
    json_logs: bool,
    log_file: Path | None,
) -> None:
    """Trace SCRIPT, passing any remaining arguments to it."""
    setup_logging(debug=debug, json_output=json_logs, log_file=log_file)

    options: dict[str, object] = {}
    if roots:
        options["application_roots"] = [str(Path(r).resolve()) for r in roots]
    if include_dependencies:
        options["include_dependency_code"] = True
    if include_stdlib:
        options["include_standard_library_code"] = True

    destination = output or Path(f"{script}.trace")
    click.echo(f"Tracing {script} -> {destination}", err=True)
    try:
        trace_file(script, destination, options, argv=script_args)
    except ChronotraceError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)
    except SystemExit as exc:
        click.echo(f"Trace complete: {destination}", err=True)
        raise SystemExit(exc.code) from None
    except Exception as exc:
        click.echo(f"Traced script raised {type(exc).__name__}: {exc}", err=True)
        click.echo(f"Trace complete: {destination}", err=True)
        sys.exit(1)
    click.echo(f"Trace complete: {destination}", err=True)


@main.command("summary")
@click.argument("trace", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def summary_command(trace: Path) -> None:
    """Print the summary record of TRACE."""
    try:
        log = load_trace(trace)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if log.summary is None:
        click.echo(f"Error: {trace} has no summary record (session aborted?)", err=True)
        sys.exit(1)
    click.echo(json.dumps(log.summary, indent=2))
