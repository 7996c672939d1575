"""Instrumentation sources -- where raw execution events come from.

The engine only depends on :class:`InstrumentationSource`. The CPython
implementation, :class:`SysTraceSource`, combines ``sys.settrace`` (line,
call and return events of Python frames) with ``sys.setprofile`` (calls
into builtins and C extensions, reported as native events).

CPython's profiling hook does not expose the value a native callable
returned, so native-return events from this source carry no return value.
"""

from __future__ import annotations

import inspect
import os
import sys
from collections.abc import Callable, Iterable
from types import CodeType, FrameType
from typing import Any, Protocol

from chronotrace.tracing.types import InstrumentationEvent, SourceLocation, TraceEventKind

#: Handler receiving each event. For call events its result tells the source
#: whether line events are wanted for that frame.
EventHandler = Callable[[InstrumentationEvent], bool]

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.realpath(__file__)))

_RECEIVER_NAMES = ("self", "cls")


class InstrumentationSource(Protocol):
    """Emits instrumentation events to a handler while engaged."""

    def engage(self, handler: EventHandler) -> None:
        """Start delivering events to *handler*."""
        ...

    def disengage(self) -> None:
        """Stop delivering events. No event is delivered after this returns."""
        ...


def enclosing_type_name(qualname: str) -> str | None:
    """Type part of a code object's qualified name, if it is a method."""
    owner, _, _ = qualname.rpartition(".")
    if not owner or owner.endswith("<locals>"):
        return None
    return owner


def parameter_names(code: CodeType) -> tuple[str, ...]:
    """Declared parameters, ``*args``/``**kwargs`` marked with stars."""
    names = list(code.co_varnames[: code.co_argcount + code.co_kwonlyargcount])
    index = code.co_argcount + code.co_kwonlyargcount
    if code.co_flags & inspect.CO_VARARGS:
        names.insert(code.co_argcount, "*" + code.co_varnames[index])
        index += 1
    if code.co_flags & inspect.CO_VARKEYWORDS:
        names.append("**" + code.co_varnames[index])
    return tuple(names)


def _receiver_getter(frame: FrameType) -> Callable[[], Any]:
    code = frame.f_code
    if not code.co_argcount or code.co_varnames[0] not in _RECEIVER_NAMES:
        return lambda: None
    name = code.co_varnames[0]
    return lambda: frame.f_locals.get(name)


def _native_owner(func: Any) -> str | None:
    owner = getattr(func, "__self__", None)
    if owner is None or inspect.ismodule(owner):
        return None
    if isinstance(owner, type):
        return owner.__qualname__
    return type(owner).__qualname__


class SysTraceSource:
    """CPython instrumentation on top of ``sys.settrace``/``sys.setprofile``.

    Only the calling thread is instrumented. Whatever trace and profile
    functions were installed before :meth:`engage` are restored by
    :meth:`disengage`.

    Parameters:
        ignore_dirs: Directories whose code is never reported. The tracer's
            own package is always ignored.
    """

    def __init__(self, *, ignore_dirs: Iterable[str] = ()) -> None:
        self._ignore_dirs = (_PACKAGE_DIR, *(os.path.realpath(d) for d in ignore_dirs))
        self._handler: EventHandler | None = None
        self._previous_trace: Any = None
        self._previous_profile: Any = None
        self._ignored: dict[str, bool] = {}

    @property
    def engaged(self) -> bool:
        return self._handler is not None

    def engage(self, handler: EventHandler) -> None:
        self._handler = handler
        self._previous_trace = sys.gettrace()
        self._previous_profile = sys.getprofile()
        sys.setprofile(self._profile)
        sys.settrace(self._trace)

    def disengage(self) -> None:
        if self._handler is None:
            return
        sys.settrace(self._previous_trace)
        sys.setprofile(self._previous_profile)
        self._handler = None
        self._previous_trace = None
        self._previous_profile = None

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _trace(self, frame: FrameType, event: str, arg: Any) -> Any:
        """Global trace function: called once per new Python frame."""
        if self._handler is None or event != "call" or self._is_ignored(frame.f_code.co_filename):
            return None
        wants_lines = self._handler(self._frame_event(TraceEventKind.CALL, frame))
        if not wants_lines:
            frame.f_trace_lines = False
        return self._local_trace

    def _local_trace(self, frame: FrameType, event: str, arg: Any) -> Any:
        handler = self._handler
        if handler is None:
            return None
        if event == "line":
            handler(self._frame_event(TraceEventKind.LINE, frame))
        elif event == "return":
            handler(self._frame_event(TraceEventKind.RETURN, frame, return_value=arg))
        return self._local_trace

    def _profile(self, frame: FrameType, event: str, arg: Any) -> None:
        if event == "c_call":
            kind = TraceEventKind.NATIVE_CALL
        elif event == "c_return":
            kind = TraceEventKind.NATIVE_RETURN
        else:
            return
        handler = self._handler
        if handler is None or self._is_ignored(frame.f_code.co_filename):
            return
        handler(
            InstrumentationEvent(
                kind=kind,
                path=frame.f_code.co_filename,
                line=frame.f_lineno,
                method_name=getattr(arg, "__name__", None) or repr(arg),
                type_name=_native_owner(arg),
                module_name=frame.f_globals.get("__name__"),
            )
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _frame_event(
        self,
        kind: TraceEventKind,
        frame: FrameType,
        *,
        return_value: Any = None,
    ) -> InstrumentationEvent:
        code = frame.f_code
        definition = None
        if kind is TraceEventKind.CALL:
            definition = SourceLocation(
                path=code.co_filename,
                start_line=code.co_firstlineno,
                qualname=code.co_qualname,
                parameters=parameter_names(code),
            )
        return InstrumentationEvent(
            kind=kind,
            path=code.co_filename,
            line=frame.f_lineno,
            method_name=code.co_name,
            type_name=enclosing_type_name(code.co_qualname),
            module_name=frame.f_globals.get("__name__"),
            get_locals=lambda: dict(frame.f_locals),
            get_globals=lambda: frame.f_globals,
            get_receiver=_receiver_getter(frame),
            return_value=return_value,
            has_return_value=kind is TraceEventKind.RETURN,
            definition=definition,
        )

    def _is_ignored(self, path: str) -> bool:
        ignored = self._ignored.get(path)
        if ignored is None:
            real = os.path.realpath(path) if not path.startswith("<") else path
            ignored = any(
                real == d or real.startswith(d + os.sep) for d in self._ignore_dirs
            )
            self._ignored[path] = ignored
        return ignored
