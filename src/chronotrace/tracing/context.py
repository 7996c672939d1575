"""Session-scoped tracking state."""

from __future__ import annotations

from dataclasses import dataclass, field

from chronotrace.tracing.dedup import LineDeduplicator
from chronotrace.tracing.source_cache import SourceLineCache
from chronotrace.tracing.state import StateTracker


@dataclass(slots=True)
class SessionContext:
    """Everything one engine remembers between events.

    Private to a single engine instance; torn down explicitly with
    :meth:`clear` once the session is closed.
    """

    files_touched: set[str] = field(default_factory=set)
    methods_seen: set[str] = field(default_factory=set)
    #: method key -> id of the record carrying its full definition
    method_definitions: dict[str, int] = field(default_factory=dict)
    states: StateTracker = field(default_factory=StateTracker)
    dedup: LineDeduplicator = field(default_factory=LineDeduplicator)
    source_cache: SourceLineCache = field(default_factory=SourceLineCache)

    def clear(self) -> None:
        self.files_touched.clear()
        self.methods_seen.clear()
        self.method_definitions.clear()
        self.states.clear()
        self.dedup.reset()
        self.source_cache.clear()
