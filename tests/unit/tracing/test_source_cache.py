"""Tests for SourceLineCache."""

from __future__ import annotations

from pathlib import Path

import pytest

from chronotrace.errors import EnrichmentError
from chronotrace.tracing.source_cache import SourceLineCache


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "mod.py"
    path.write_text("x = 1   \n\ndef f():\n    return x\n", encoding="utf-8")
    return path


class TestSourceLineCache:
    def test_line_strips_trailing_whitespace(self, source_file: Path) -> None:
        assert SourceLineCache().line(str(source_file), 1) == "x = 1"

    def test_line_keeps_indentation(self, source_file: Path) -> None:
        assert SourceLineCache().line(str(source_file), 4) == "    return x"

    def test_out_of_range(self, source_file: Path) -> None:
        cache = SourceLineCache()
        assert cache.line(str(source_file), 0) is None
        assert cache.line(str(source_file), 99) is None

    def test_file_loaded_once(self, source_file: Path) -> None:
        cache = SourceLineCache()
        cache.line(str(source_file), 1)
        source_file.write_text("changed\n", encoding="utf-8")
        assert cache.line(str(source_file), 1) == "x = 1"
        assert str(source_file) in cache
        assert len(cache) == 1

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(EnrichmentError) as exc_info:
            SourceLineCache().lines(str(tmp_path / "missing.py"))
        assert exc_info.value.field_name == "source"

    def test_clear(self, source_file: Path) -> None:
        cache = SourceLineCache()
        cache.lines(str(source_file))
        cache.clear()
        assert len(cache) == 0
