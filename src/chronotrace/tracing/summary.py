"""Terminal session summary record."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chronotrace.config import TraceConfig
from chronotrace.tracing.classifier import CodeClassifier
from chronotrace.tracing.context import SessionContext
from chronotrace.tracing.types import SUMMARY_EVENT, utc_timestamp
from chronotrace.tracing.writer import RecordWriter


@dataclass(slots=True)
class TraceSummary:
    """Aggregate statistics for a finished session."""

    total_steps: int
    app_files: list[str] = field(default_factory=list)
    external_files: list[str] = field(default_factory=list)
    methods_called: list[str] = field(default_factory=list)
    method_definitions: dict[str, int] = field(default_factory=dict)
    object_count: int = 0
    constants_tracked: list[str] = field(default_factory=list)
    configuration: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": SUMMARY_EVENT,
            "timestamp": utc_timestamp(),
            "app_files": self.app_files,
            "external_files": self.external_files,
            "methods_called": self.methods_called,
            "total_steps": self.total_steps,
            "method_definitions": self.method_definitions,
            "object_count": self.object_count,
            "constants_tracked": self.constants_tracked,
            "configuration": self.configuration,
        }


class SessionSummary:
    """Builds and writes the one summary record closing a session."""

    def __init__(self, config: TraceConfig, classifier: CodeClassifier) -> None:
        self._config = config
        self._classifier = classifier

    def build(self, context: SessionContext, writer: RecordWriter) -> TraceSummary:
        touched = sorted(context.files_touched)
        return TraceSummary(
            # The summary takes the next id, so every id before it is a step.
            total_steps=writer.next_id - 1,
            app_files=[f for f in touched if self._classifier.is_application_code(f)],
            external_files=[f for f in touched if not self._classifier.is_application_code(f)],
            methods_called=sorted(context.methods_seen),
            method_definitions=dict(context.method_definitions),
            object_count=context.states.entity_count,
            constants_tracked=context.states.constant_keys(),
            configuration=self._config.to_dict(),
        )

    def finalize(self, context: SessionContext, writer: RecordWriter) -> int:
        """Write the summary and return its record id."""
        return writer.write(self.build(context, writer).to_dict())
