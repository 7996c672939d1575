"""Trace engine -- turns instrumentation events into trace records.

Lifecycle::

    Idle --run()--> Active --work returns/raises--> Finalizing --> Closed

While active, every event is handled synchronously on the traced thread:
filter, classify, deduplicate, enrich, write. Instrumentation is disengaged
before the summary is produced so the tracer never records itself.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path
from types import GetSetDescriptorType, MemberDescriptorType, ModuleType
from typing import Any, TypeVar

from chronotrace.config import TraceConfig
from chronotrace.errors import SessionStateError, TraceResourceError, error_marker
from chronotrace.logger import bind_session, ensure_not_logging_to, get_logger, unbind_session
from chronotrace.tracing.classifier import CodeClassifier, CodeOrigin
from chronotrace.tracing.context import SessionContext
from chronotrace.tracing.instrumentation import InstrumentationSource, SysTraceSource
from chronotrace.tracing.method_extractor import MethodDefinitionExtractor
from chronotrace.tracing.serializer import ValueSerializer
from chronotrace.tracing.state import StateStatus
from chronotrace.tracing.summary import SessionSummary
from chronotrace.tracing.types import (
    TOP_LEVEL_METHOD,
    InstrumentationEvent,
    TraceEventKind,
    TraceRecord,
    utc_timestamp,
)
from chronotrace.tracing.writer import RecordWriter

logger = get_logger(__name__)

T = TypeVar("T")

_CONSTANT_NAME_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")
_SOURCE_SUFFIX = ".py"
_CODE_TYPES = (
    ModuleType,
    type,
    staticmethod,
    classmethod,
    property,
    MemberDescriptorType,
    GetSetDescriptorType,
)


class SessionState(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    CLOSED = "closed"


def _is_constant_name(name: str) -> bool:
    return bool(_CONSTANT_NAME_RE.match(name))


def _is_plain_value(value: Any) -> bool:
    """Data rather than code: not a module, class, function or descriptor."""
    if isinstance(value, _CODE_TYPES):
        return False
    return not callable(value)


def _visible_local(name: str, value: Any) -> bool:
    return not name.startswith("__") and not isinstance(value, ModuleType)


def _slot_names(cls: type) -> list[str]:
    names: list[str] = []
    for klass in cls.__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name in ("__dict__", "__weakref__"):
                continue
            if name.startswith("__") and not name.endswith("__"):
                name = f"_{klass.__name__.lstrip('_')}{name}"
            if name not in names:
                names.append(name)
    return names


def _instance_attributes(obj: Any) -> dict[str, Any]:
    """Instance ``__dict__`` entries followed by any set ``__slots__``."""
    attributes = dict(getattr(obj, "__dict__", {}))
    for name in _slot_names(type(obj)):
        if name in attributes:
            continue
        try:
            attributes[name] = getattr(obj, name)
        except AttributeError:
            continue  # unset slot
    return attributes


class TraceEngine:
    """Single-session tracer writing to one exclusively owned destination.

    Parameters:
        output: Path of the trace file to create.
        config: Session configuration. Defaults to tracing the cwd.
        source: Instrumentation source; :class:`SysTraceSource` by default.
        classifier: Overrides the classifier built from *config*.
    """

    def __init__(
        self,
        output: str | Path,
        config: TraceConfig | None = None,
        *,
        source: InstrumentationSource | None = None,
        classifier: CodeClassifier | None = None,
        serializer: ValueSerializer | None = None,
    ) -> None:
        self._config = config or TraceConfig()
        self._classifier = classifier or CodeClassifier(self._config.application_roots)
        self._source = source or SysTraceSource()
        self._serializer = serializer or ValueSerializer()
        self._writer = RecordWriter(output)
        self._context = SessionContext()
        self._extractor = MethodDefinitionExtractor(self._classifier, self._context.source_cache)
        self._summary = SessionSummary(self._config, self._classifier)
        self._state = SessionState.IDLE
        self._summary_id: int | None = None
        self._write_error: TraceResourceError | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> TraceConfig:
        return self._config

    @property
    def output_path(self) -> Path:
        return self._writer.path

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def summary_id(self) -> int | None:
        """Id of the summary record, once written."""
        return self._summary_id

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def run(self, work: Callable[[], T]) -> T:
        """Trace *work* and return its result, re-raising whatever it raises.

        Raises:
            SessionStateError: the engine has already been used.
            ConfigurationError: log output is routed to the trace destination.
            TraceResourceError: the destination cannot be opened or written.
        """
        if self._state is not SessionState.IDLE:
            raise SessionStateError(
                f"trace engine is {self._state}, expected idle", state=str(self._state)
            )

        ensure_not_logging_to(self._writer.path)
        self._writer.open()
        bind_session(self._writer.path)
        logger.info(
            "trace_session_started",
            roots=list(self._config.application_roots),
        )
        try:
            self._state = SessionState.ACTIVE
            self._source.engage(self.handle)
            try:
                result = work()
            except BaseException:
                self._finalize(work_failed=True)
                raise
            self._finalize(work_failed=False)
            if self._write_error is not None:
                raise self._write_error
            return result
        finally:
            self._writer.close()
            self._state = SessionState.CLOSED
            self._context.clear()
            logger.info("trace_session_closed", summary_id=self._summary_id)
            unbind_session()

    def _finalize(self, *, work_failed: bool) -> None:
        self._source.disengage()
        self._state = SessionState.FINALIZING
        if self._writer.broken:
            return
        try:
            self._summary_id = self._summary.finalize(self._context, self._writer)
        except TraceResourceError:
            if not work_failed:
                raise
            # The traced program's own error takes precedence.
            logger.error("trace_summary_failed", path=str(self._writer.path), exc_info=True)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def handle(self, event: InstrumentationEvent) -> bool:
        """Process one event. Returns whether line events are wanted for it."""
        if self._state is not SessionState.ACTIVE:
            return False
        path = event.path
        if not path or path.startswith("<") or not path.endswith(_SOURCE_SUFFIX):
            return False

        origin = self._classifier.origin(path)
        app_code = origin is CodeOrigin.APPLICATION
        if not app_code and not self._records_external(event.kind, origin):
            return False

        self._context.files_touched.add(path)
        if not self._context.dedup.should_forward(event.kind, path, event.line, app_code=app_code):
            return app_code

        record = self._compose(event, app_code)
        try:
            self._writer.write(record.to_dict())
        except TraceResourceError as exc:
            # Stop observing; run() raises once the traced work is done.
            self._write_error = exc
            self._source.disengage()
            self._state = SessionState.FINALIZING
            return False
        return app_code

    def _records_external(self, kind: TraceEventKind, origin: CodeOrigin) -> bool:
        if kind is TraceEventKind.LINE:
            return False
        if origin is CodeOrigin.DEPENDENCY:
            return self._config.include_dependency_code
        if origin is CodeOrigin.STANDARD_LIBRARY:
            return self._config.include_standard_library_code
        return True

    def _compose(self, event: InstrumentationEvent, app_code: bool) -> TraceRecord:
        record_id = self._writer.next_id
        kind = event.kind
        enrichment: dict[str, Any] = {}

        if kind is TraceEventKind.CALL:
            self._capture_definition(event, app_code, record_id, enrichment)

        if app_code and kind in (TraceEventKind.LINE, TraceEventKind.CALL):
            self._capture_locals(event, enrichment)
            self._capture_attributes(event, record_id, enrichment)
            self._capture_type_state(event, record_id, enrichment)
            self._capture_module_constants(event, record_id, enrichment)

        if kind.is_return and event.has_return_value:
            enrichment["return_value"] = self._serializer.serialize(event.return_value).to_dict()

        if kind is TraceEventKind.CALL:
            self._capture_params(event, enrichment)

        if app_code and kind is TraceEventKind.LINE:
            self._capture_source(event, enrichment)

        return TraceRecord(
            id=record_id,
            timestamp=utc_timestamp(),
            file=Path(event.path).name,
            file_path=event.path,
            line=event.line,
            event=kind,
            method=event.method_name or TOP_LEVEL_METHOD,
            type_name=event.type_name,
            app_code=app_code,
            enrichment=enrichment,
        )

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _recover(self, enrichment: dict[str, Any], field_name: str, exc: Exception) -> None:
        logger.debug("trace_enrichment_failed", field=field_name, error=str(exc), exc_info=True)
        enrichment[field_name] = error_marker(exc)

    def _capture_definition(
        self,
        event: InstrumentationEvent,
        app_code: bool,
        record_id: int,
        enrichment: dict[str, Any],
    ) -> None:
        key = event.method_key
        self._context.methods_seen.add(key)

        first_id = self._context.method_definitions.get(key)
        if first_id is not None:
            enrichment["method_definition_id"] = first_id
            return
        if not app_code:
            return
        try:
            definition = self._extractor.extract(event.definition)
        except Exception as exc:
            self._recover(enrichment, "method_definition_error", exc)
            return
        if definition is not None:
            enrichment["method_definition"] = definition.to_dict()
            self._context.method_definitions[key] = record_id

    def _capture_locals(self, event: InstrumentationEvent, enrichment: dict[str, Any]) -> None:
        try:
            visible = {k: v for k, v in event.get_locals().items() if _visible_local(k, v)}
            if visible:
                enrichment["locals"] = self._serializer.serialize_mapping(visible)
        except Exception as exc:
            self._recover(enrichment, "locals_error", exc)

    def _capture_attributes(
        self, event: InstrumentationEvent, record_id: int, enrichment: dict[str, Any]
    ) -> None:
        try:
            receiver = event.get_receiver()
            if receiver is None or isinstance(receiver, type):
                return
            attributes = _instance_attributes(receiver)
            token = self._serializer.identity_token(receiver)
            captured: dict[str, Any] = {}
            for name, value in attributes.items():
                serialized = self._serializer.serialize(value).to_dict()
                observation = self._context.states.observe_attribute(token, name, value, record_id)
                captured[name] = observation.annotate(serialized)
            if captured:
                enrichment["attributes"] = captured
        except Exception as exc:
            self._recover(enrichment, "attributes_error", exc)

    def _resolve_type(self, event: InstrumentationEvent) -> type | None:
        receiver = event.get_receiver()
        if receiver is not None:
            owner = receiver if isinstance(receiver, type) else type(receiver)
            if event.type_name:
                # The method may be inherited; prefer the class defining it.
                for cls in owner.__mro__:
                    if cls.__qualname__ == event.type_name:
                        return cls
            return owner
        if event.type_name and "." not in event.type_name:
            candidate = event.get_globals().get(event.type_name)
            if isinstance(candidate, type):
                return candidate
        return None

    def _capture_type_state(
        self, event: InstrumentationEvent, record_id: int, enrichment: dict[str, Any]
    ) -> None:
        """Type-level attributes and UPPER_CASE class constants."""
        try:
            cls = self._resolve_type(event)
            if cls is None or cls.__module__ == "builtins":
                return
            type_key = f"{cls.__module__}.{cls.__qualname__}"
            members = {
                name: value
                for name, value in vars(cls).items()
                if not name.startswith("__") and _is_plain_value(value)
            }
        except Exception as exc:
            self._recover(enrichment, "type_attributes_error", exc)
            return

        try:
            captured: dict[str, Any] = {}
            for name, value in members.items():
                if _is_constant_name(name):
                    continue
                serialized = self._serializer.serialize(value).to_dict()
                observation = self._context.states.observe_type_attribute(
                    type_key, name, value, record_id
                )
                captured[name] = observation.annotate(serialized)
            if captured:
                enrichment["type_attributes"] = captured
        except Exception as exc:
            self._recover(enrichment, "type_attributes_error", exc)

        constants = {
            f"{type_key}.{name}": value for name, value in members.items() if _is_constant_name(name)
        }
        self._observe_constants(constants, record_id, enrichment)

    def _capture_module_constants(
        self, event: InstrumentationEvent, record_id: int, enrichment: dict[str, Any]
    ) -> None:
        try:
            module = event.module_name or "?"
            constants = {
                f"{module}.{name}": value
                for name, value in list(event.get_globals().items())
                if _is_constant_name(name) and _is_plain_value(value)
            }
        except Exception as exc:
            self._recover(enrichment, "constants_error", exc)
            return
        self._observe_constants(constants, record_id, enrichment)

    def _observe_constants(
        self, constants: dict[str, Any], record_id: int, enrichment: dict[str, Any]
    ) -> None:
        """Track constants, surfacing only first sightings and redefinitions."""
        if not constants:
            return
        try:
            surfaced: dict[str, Any] = enrichment.get("constants", {})
            for qualified, value in constants.items():
                observation = self._context.states.observe_constant(qualified, value, record_id)
                if observation.status is StateStatus.UNCHANGED:
                    continue
                if observation.illegally_redefined:
                    logger.warning(
                        "trace_constant_redefined",
                        constant=qualified,
                        previous_record_id=observation.previous_record_id,
                        record_id=record_id,
                    )
                serialized = self._serializer.serialize(value).to_dict()
                surfaced[qualified] = observation.annotate(serialized)
            if surfaced:
                enrichment["constants"] = surfaced
        except Exception as exc:
            self._recover(enrichment, "constants_error", exc)

    def _capture_params(self, event: InstrumentationEvent, enrichment: dict[str, Any]) -> None:
        if event.definition is None or not event.definition.parameters:
            return
        try:
            names = [p.lstrip("*") for p in event.definition.parameters]
            enrichment["params"] = names
            local_values = event.get_locals()
            values = {n: local_values[n] for n in names if n in local_values}
            if values:
                enrichment["param_values"] = self._serializer.serialize_mapping(values)
        except Exception as exc:
            self._recover(enrichment, "params_error", exc)

    def _capture_source(self, event: InstrumentationEvent, enrichment: dict[str, Any]) -> None:
        try:
            text = self._context.source_cache.line(event.path, event.line)
        except Exception as exc:
            self._recover(enrichment, "source_error", exc)
            return
        if text is not None:
            enrichment["source"] = text
