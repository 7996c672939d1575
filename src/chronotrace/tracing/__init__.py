"""Tracing package -- event capture, change detection and durable records.

Submodules
~~~~~~~~~~
- :mod:`chronotrace.tracing.types` -- event kinds, trace records and the
  instrumentation event shape.
- :mod:`chronotrace.tracing.instrumentation` -- the instrumentation source
  interface and its ``sys.settrace``/``sys.setprofile`` implementation.
- :mod:`chronotrace.tracing.engine` -- :class:`TraceEngine`, which composes
  classification, deduplication, enrichment and writing per event.
- :mod:`chronotrace.tracing.writer` -- :class:`RecordWriter` (durable JSONL)
  and :func:`load_trace`.
"""

from __future__ import annotations

# --- types ----------------------------------------------------------------
from chronotrace.tracing.types import (
    SUMMARY_EVENT,
    TOP_LEVEL_METHOD,
    InstrumentationEvent,
    MethodDefinition,
    SourceLocation,
    TraceEventKind,
    TraceRecord,
)

# --- components -----------------------------------------------------------
from chronotrace.tracing.classifier import CodeClassifier, CodeOrigin
from chronotrace.tracing.dedup import LineDeduplicator
from chronotrace.tracing.method_extractor import MethodDefinitionExtractor
from chronotrace.tracing.serializer import SerializedValue, ValueSerializer
from chronotrace.tracing.source_cache import SourceLineCache
from chronotrace.tracing.state import Observation, StateStatus, StateTracker
from chronotrace.tracing.summary import SessionSummary, TraceSummary
from chronotrace.tracing.writer import RecordWriter, TraceLog, load_trace

# --- orchestration --------------------------------------------------------
from chronotrace.tracing.context import SessionContext
from chronotrace.tracing.engine import SessionState, TraceEngine
from chronotrace.tracing.instrumentation import InstrumentationSource, SysTraceSource

__all__ = [
    # types
    "SUMMARY_EVENT",
    "TOP_LEVEL_METHOD",
    "InstrumentationEvent",
    "MethodDefinition",
    "SourceLocation",
    "TraceEventKind",
    "TraceRecord",
    # components
    "CodeClassifier",
    "CodeOrigin",
    "LineDeduplicator",
    "MethodDefinitionExtractor",
    "SerializedValue",
    "ValueSerializer",
    "SourceLineCache",
    "Observation",
    "StateStatus",
    "StateTracker",
    "SessionSummary",
    "TraceSummary",
    "RecordWriter",
    "TraceLog",
    "load_trace",
    # orchestration
    "SessionContext",
    "SessionState",
    "TraceEngine",
    "InstrumentationSource",
    "SysTraceSource",
]
