"""Chronotrace -- durable execution traces for offline review."""

from __future__ import annotations

__version__ = "0.1.0"

from chronotrace.api import run, trace_execution, trace_file
from chronotrace.config import TraceConfig, load_config
from chronotrace.tracing.engine import TraceEngine

__all__ = [
    "__version__",
    "TraceConfig",
    "TraceEngine",
    "load_config",
    "run",
    "trace_execution",
    "trace_file",
]
