"""Suppression of repeated line events."""

from __future__ import annotations

from chronotrace.tracing.types import TraceEventKind


class LineDeduplicator:
    """Drop an application line event that repeats the last forwarded one.

    Tight loops on a single line otherwise flood the trace with records that
    carry no new position. Only line events are ever suppressed, and only
    forwarded line events move the remembered position.
    """

    def __init__(self) -> None:
        self._last: tuple[str, int] | None = None

    @property
    def last_line(self) -> tuple[str, int] | None:
        return self._last

    def should_forward(self, kind: TraceEventKind, path: str, line: int, *, app_code: bool) -> bool:
        if kind is not TraceEventKind.LINE or not app_code:
            return True
        location = (path, line)
        if location == self._last:
            return False
        self._last = location
        return True

    def reset(self) -> None:
        self._last = None
