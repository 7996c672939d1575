"""Session entry points."""

from __future__ import annotations

import runpy
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TypeVar

from chronotrace.config import TraceConfig, load_config
from chronotrace.logger import get_logger
from chronotrace.tracing.engine import TraceEngine

logger = get_logger(__name__)

T = TypeVar("T")

TRACE_SUFFIX = ".trace"


def run(
    output_destination: str | Path,
    configuration: TraceConfig | None,
    work: Callable[[], T],
) -> T:
    """Trace *work* into *output_destination* and return its result.

    The destination is opened exclusively, the summary record is written
    once *work* finishes (normally or not) and the destination is closed on
    every path. Whatever *work* raises propagates unchanged.
    """
    return TraceEngine(output_destination, configuration).run(work)


def trace_execution(
    name: str,
    work: Callable[[], T],
    options: dict[str, Any] | None = None,
) -> T:
    """Trace *work* into ``<name>.trace``, treating the cwd as application code."""
    trace_path = Path(f"{name}{TRACE_SUFFIX}")
    config = load_config(options)
    logger.info("tracing_execution", name=name, path=str(trace_path))
    result = run(trace_path, config, work)
    logger.info("trace_complete", path=str(trace_path))
    return result


def trace_file(
    script_path: str | Path,
    trace_path: str | Path | None = None,
    options: dict[str, Any] | None = None,
    *,
    argv: Sequence[str] = (),
) -> dict[str, Any]:
    """Run a Python script as ``__main__`` under tracing.

    The script's directory is the default application root, and relative
    roots in *options* are resolved against it. *argv* is exposed to the
    script as ``sys.argv[1:]``.

    Returns:
        The script's module globals after execution.
    """
    script = Path(script_path).resolve()
    destination = Path(trace_path) if trace_path else Path(f"{script_path}{TRACE_SUFFIX}")
    config = load_config(options, working_dir=str(script.parent))

    logger.info(
        "tracing_file",
        script=str(script),
        path=str(destination),
        roots=list(config.application_roots),
    )

    saved_argv = sys.argv
    sys.argv = [str(script), *argv]
    try:
        result = run(destination, config, lambda: runpy.run_path(str(script), run_name="__main__"))
    finally:
        sys.argv = saved_argv

    logger.info("trace_complete", path=str(destination))
    return result
