"""Tests for the sys.settrace instrumentation source."""

from __future__ import annotations

import sys

from chronotrace.tracing.instrumentation import (
    SysTraceSource,
    enclosing_type_name,
    parameter_names,
)
from chronotrace.tracing.types import InstrumentationEvent, TraceEventKind


def _plain(a, b=1):
    return a


def _star(a, *args, key, **kwargs):
    return a


def _kwonly(*, flag):
    return flag


class _Owner:
    def method(self, x):
        return x

    @classmethod
    def build(cls):
        return cls()


class TestParameterNames:
    def test_positional(self) -> None:
        assert parameter_names(_plain.__code__) == ("a", "b")

    def test_var_args_and_keywords(self) -> None:
        assert parameter_names(_star.__code__) == ("a", "*args", "key", "**kwargs")

    def test_keyword_only(self) -> None:
        assert parameter_names(_kwonly.__code__) == ("flag",)

    def test_method_includes_self(self) -> None:
        assert parameter_names(_Owner.method.__code__) == ("self", "x")

    def test_no_parameters(self) -> None:
        assert parameter_names((lambda: None).__code__) == ()


class TestEnclosingTypeName:
    def test_function(self) -> None:
        assert enclosing_type_name("helper") is None

    def test_method(self) -> None:
        assert enclosing_type_name("Owner.method") == "Owner"

    def test_nested_class(self) -> None:
        assert enclosing_type_name("Outer.Inner.method") == "Outer.Inner"

    def test_closure(self) -> None:
        assert enclosing_type_name("outer.<locals>.inner") is None

    def test_method_of_local_class(self) -> None:
        assert enclosing_type_name("outer.<locals>.Local.method") == "outer.<locals>.Local"


class TestSysTraceSource:
    def test_engage_and_disengage_restore_hooks(self) -> None:
        before = sys.gettrace(), sys.getprofile()
        source = SysTraceSource()
        source.engage(lambda event: True)
        try:
            assert source.engaged
        finally:
            source.disengage()
        assert (sys.gettrace(), sys.getprofile()) == before
        assert not source.engaged

    def test_second_disengage_keeps_restored_hooks(self) -> None:
        def outer(frame, event, arg):
            return None

        previous = sys.gettrace()
        sys.settrace(outer)
        try:
            source = SysTraceSource()
            source.engage(lambda event: True)
            source.disengage()
            source.disengage()
            assert sys.gettrace() is outer
        finally:
            sys.settrace(previous)

    def test_events_delivered(self) -> None:
        events: list[InstrumentationEvent] = []
        snapshot: dict = {}

        def handler(event: InstrumentationEvent) -> bool:
            events.append(event)
            if event.kind is TraceEventKind.CALL and event.method_name == "method":
                snapshot["locals"] = event.get_locals()
                snapshot["receiver"] = event.get_receiver()
            return True

        source = SysTraceSource()
        source.engage(handler)
        try:
            _Owner().method(3)
        finally:
            source.disengage()

        calls = [e for e in events if e.kind is TraceEventKind.CALL and e.method_name == "method"]
        assert len(calls) == 1
        call = calls[0]
        assert call.type_name == "_Owner"
        assert call.module_name == __name__
        assert call.definition is not None
        assert call.definition.qualname == "_Owner.method"
        assert call.definition.parameters == ("self", "x")
        assert snapshot["locals"]["x"] == 3
        assert isinstance(snapshot["receiver"], _Owner)

        returns = [e for e in events if e.kind is TraceEventKind.RETURN and e.method_name == "method"]
        assert returns[0].has_return_value
        assert returns[0].return_value == 3

    def test_lines_suppressed_when_not_wanted(self) -> None:
        events: list[InstrumentationEvent] = []

        def handler(event: InstrumentationEvent) -> bool:
            events.append(event)
            return False

        source = SysTraceSource()
        source.engage(handler)
        try:
            _plain(1)
        finally:
            source.disengage()

        kinds = {e.kind for e in events if e.method_name == "_plain"}
        assert TraceEventKind.CALL in kinds
        assert TraceEventKind.RETURN in kinds
        assert TraceEventKind.LINE not in kinds

    def test_native_calls(self) -> None:
        events: list[InstrumentationEvent] = []

        def handler(event: InstrumentationEvent) -> bool:
            events.append(event)
            return True

        source = SysTraceSource()
        source.engage(handler)
        try:
            len([1, 2])
        finally:
            source.disengage()

        natives = [e for e in events if e.kind.is_native and e.method_name == "len"]
        assert [e.kind for e in natives] == [TraceEventKind.NATIVE_CALL, TraceEventKind.NATIVE_RETURN]
        assert natives[0].type_name is None
        assert not natives[1].has_return_value

    def test_ignored_directories(self, tmp_path) -> None:
        source = SysTraceSource(ignore_dirs=[str(tmp_path)])
        assert source._is_ignored(str(tmp_path / "x.py"))
        assert not source._is_ignored(__file__)
        assert source._is_ignored(sys.modules["chronotrace.tracing.engine"].__file__)
