"""Shared test helpers for the chronotrace test suite."""

from __future__ import annotations

from tests.helpers.trace_verifier import TraceVerifier

__all__ = ["TraceVerifier"]
