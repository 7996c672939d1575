"""Chronotrace error hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    CONFIGURATION = "configuration"
    RESOURCE = "resource"
    ENRICHMENT = "enrichment"
    SESSION = "session"
    INTERNAL = "internal"


class ChronotraceError(Exception):
    """Base error for all tracer exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


class ConfigurationError(ChronotraceError):
    """Invalid configuration value."""

    def __init__(self, message: str, *, option: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION)
        self.option = option


class TraceResourceError(ChronotraceError):
    """The output destination could not be opened, locked, written or synced.

    Always fatal to the session.
    """

    def __init__(self, message: str, *, path: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.RESOURCE, **kwargs)
        self.path = path


class EnrichmentError(ChronotraceError):
    """A single enrichment field could not be produced.

    Recovered locally: the engine replaces the field with an inline marker.
    """

    def __init__(self, message: str, *, field_name: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.ENRICHMENT)
        self.field_name = field_name


class SessionStateError(ChronotraceError):
    """Lifecycle misuse, e.g. running an engine twice."""

    def __init__(self, message: str, *, state: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.SESSION)
        self.state = state


def error_marker(error: BaseException | str) -> str:
    """Render the inline marker stored in place of a failed enrichment."""
    return f"<error: {error}>"
