"""Structured logging for the tracer.

Log events go through a handler on the ``chronotrace`` stdlib logger only,
so the traced program's own logging setup is never touched. Output goes to
stderr unless a log file is given, and that file may never be a trace
destination: :func:`ensure_not_logging_to` is checked before a session
opens its output. While a session runs, its ``trace_path`` is bound into
every event through structlog's context variables.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

from chronotrace.errors import ConfigurationError

LOGGER_NAME = "chronotrace"

_HANDLER_NAME = "chronotrace"
_SESSION_KEY = "trace_path"


class _StderrHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stderr`` is when the record is emitted."""

    def __init__(self) -> None:
        logging.Handler.__init__(self)

    @property
    def stream(self) -> Any:  # type: ignore[override]
        return sys.stderr

    @stream.setter
    def stream(self, _value: Any) -> None:
        pass


def _log_file(handler: logging.Handler) -> str | None:
    filename = getattr(handler, "baseFilename", None)
    return os.path.realpath(filename) if filename else None


def setup_logging(
    *,
    debug: bool = False,
    json_output: bool = False,
    log_file: str | Path | None = None,
) -> None:
    """Configure structlog for the command line.

    Library code never calls this; it only asks for loggers. Calling it
    again replaces the previous handler.

    Args:
        debug: Enable DEBUG level logging.
        json_output: Use JSON output format instead of console.
        log_file: Append log lines to this file instead of stderr.
    """
    level = logging.DEBUG if debug else logging.INFO

    handler: logging.Handler
    if log_file is None:
        handler = _StderrHandler()
    else:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(message)s"))

    package_logger = logging.getLogger(LOGGER_NAME)
    for existing in list(package_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            package_logger.removeHandler(existing)
            existing.close()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=log_file is None))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def ensure_not_logging_to(path: str | Path) -> None:
    """Refuse a trace destination that a log handler already writes to.

    Raises:
        ConfigurationError: a file handler on the ``chronotrace`` or root
            logger targets *path*.
    """
    target = os.path.realpath(path)
    handlers = [*logging.getLogger(LOGGER_NAME).handlers, *logging.getLogger().handlers]
    for handler in handlers:
        if _log_file(handler) == target:
            raise ConfigurationError(
                f"log output already goes to {path}; choose another trace destination",
                option="log_file",
            )


def bind_session(trace_path: str | Path) -> None:
    """Attach *trace_path* to every log event until :func:`unbind_session`."""
    structlog.contextvars.bind_contextvars(**{_SESSION_KEY: str(trace_path)})


def unbind_session() -> None:
    structlog.contextvars.unbind_contextvars(_SESSION_KEY)


def get_logger(name: str = LOGGER_NAME, **kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name, **kwargs)
