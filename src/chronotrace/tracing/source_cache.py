"""Per-session cache of source file lines."""

from __future__ import annotations

from pathlib import Path

from chronotrace.errors import EnrichmentError


class SourceLineCache:
    """Lazily loads each file once and serves single-line lookups.

    Unlike :mod:`linecache`, read failures are reported to the caller as
    :class:`EnrichmentError` instead of being turned into empty results.
    """

    def __init__(self) -> None:
        self._files: dict[str, list[str]] = {}

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def lines(self, path: str) -> list[str]:
        """All lines of *path*, without line terminators."""
        cached = self._files.get(path)
        if cached is None:
            try:
                text = Path(path).read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                raise EnrichmentError(
                    f"cannot read {path}: {exc}", field_name="source"
                ) from exc
            cached = text.splitlines()
            self._files[path] = cached
        return cached

    def line(self, path: str, number: int) -> str | None:
        """Line *number* (1-based) of *path* with trailing whitespace removed."""
        lines = self.lines(path)
        if number < 1 or number > len(lines):
            return None
        return lines[number - 1].rstrip()

    def clear(self) -> None:
        self._files.clear()
