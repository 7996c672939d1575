"""Trace record types and the instrumentation event shape.

Defines the closed set of event kinds the engine records, the immutable
:class:`TraceRecord` written once per forwarded event, and the
:class:`InstrumentationEvent` the instrumentation source hands to the engine.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

#: Method name used for module-level code.
TOP_LEVEL_METHOD = "<module>"

#: ``event`` value of the terminal summary record.
SUMMARY_EVENT = "trace_summary"


class TraceEventKind(StrEnum):
    """Kinds of instrumentation events the engine records."""

    LINE = "line"
    CALL = "call"
    RETURN = "return"
    NATIVE_CALL = "native_call"
    NATIVE_RETURN = "native_return"

    @property
    def is_native(self) -> bool:
        return self in (TraceEventKind.NATIVE_CALL, TraceEventKind.NATIVE_RETURN)

    @property
    def is_return(self) -> bool:
        return self in (TraceEventKind.RETURN, TraceEventKind.NATIVE_RETURN)


#: Enrichment keys in the order they are written.
ENRICHMENT_FIELDS: tuple[str, ...] = (
    "method_definition",
    "method_definition_id",
    "method_definition_error",
    "locals",
    "locals_error",
    "attributes",
    "attributes_error",
    "type_attributes",
    "type_attributes_error",
    "constants",
    "constants_error",
    "return_value",
    "params",
    "param_values",
    "params_error",
    "source",
    "source_error",
)


@dataclass(slots=True, frozen=True)
class SourceLocation:
    """Where an invoked method is defined."""

    path: str
    start_line: int
    qualname: str
    parameters: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class MethodDefinition:
    """Full source text of a method, captured on its first call."""

    source: str
    file: str
    start_line: int
    end_line: int
    signature: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "file": self.file,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "signature": self.signature,
        }


def _empty_mapping() -> dict[str, Any]:
    return {}


def _no_receiver() -> Any:
    return None


@dataclass(slots=True)
class InstrumentationEvent:
    """A single observation handed over by the instrumentation source.

    Frame state is exposed through zero-argument callables so the engine only
    pays for the reflection it actually needs for a given event.
    """

    kind: TraceEventKind
    path: str
    line: int
    method_name: str | None = None
    type_name: str | None = None
    module_name: str | None = None
    get_locals: Callable[[], dict[str, Any]] = _empty_mapping
    get_globals: Callable[[], dict[str, Any]] = _empty_mapping
    get_receiver: Callable[[], Any] = _no_receiver
    return_value: Any = None
    has_return_value: bool = False
    definition: SourceLocation | None = None

    @property
    def method_key(self) -> str:
        """Stable key identifying the invoked method across the session."""
        module = self.module_name or "?"
        if self.definition is not None:
            return f"{module}:{self.definition.qualname}"
        name = self.method_name or TOP_LEVEL_METHOD
        qualified = f"{self.type_name}.{name}" if self.type_name else name
        return f"{module}:{qualified}"


@dataclass(slots=True, frozen=True)
class TraceRecord:
    """One emitted, immutable, sequence-numbered unit of the trace.

    Optional enrichment fields live in *enrichment*, keyed by their JSON
    name; absent keys are simply omitted from the output line.
    """

    id: int
    timestamp: str
    file: str
    file_path: str
    line: int
    event: TraceEventKind
    method: str
    type_name: str | None
    app_code: bool
    enrichment: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict suitable for JSON encoding."""
        d: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "file": self.file,
            "file_path": self.file_path,
            "line": self.line,
            "event": str(self.event),
            "method": self.method,
            "class": self.type_name,
            "app_code": self.app_code,
        }
        for key in ENRICHMENT_FIELDS:
            if key in self.enrichment:
                d[key] = self.enrichment[key]
        return d

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TraceRecord:
        """Reconstruct a :class:`TraceRecord` from a parsed output line."""
        return cls(
            id=int(raw["id"]),
            timestamp=str(raw["timestamp"]),
            file=str(raw["file"]),
            file_path=str(raw["file_path"]),
            line=int(raw["line"]),
            event=TraceEventKind(raw["event"]),
            method=str(raw["method"]),
            type_name=raw.get("class"),
            app_code=bool(raw["app_code"]),
            enrichment={k: raw[k] for k in ENRICHMENT_FIELDS if k in raw},
        )


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")
