"""Global test fixtures for chronotrace."""

from __future__ import annotations

from pathlib import Path

import pytest

from chronotrace.config import TraceConfig

TESTS_DIR = Path(__file__).resolve().parent


@pytest.fixture
def trace_path(tmp_path: Path) -> Path:
    """Destination for a single trace session."""
    return tmp_path / "session.trace"


@pytest.fixture
def tests_config() -> TraceConfig:
    """Configuration treating the test suite itself as application code."""
    return TraceConfig(application_roots=(str(TESTS_DIR),))
