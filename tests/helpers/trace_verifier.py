"""TraceVerifier -- loads a trace file and runs integrity assertions."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from chronotrace.tracing.types import SUMMARY_EVENT, TraceEventKind, TraceRecord


@dataclass
class VerificationResult:
    """Outcome of a single verification check."""

    check: str
    passed: bool
    details: str = ""
    violations: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        base = f"[{status}] {self.check}"
        if self.details:
            base += f" - {self.details}"
        if self.violations:
            base += "\n  " + "\n  ".join(self.violations[:10])
        return base


class TraceVerifier:
    """Load a trace file and expose assertion methods.

    Usage::

        v = TraceVerifier(path)
        assert v.all_passed(), v.report()
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.lines: list[dict[str, Any]] = [
            json.loads(line)
            for line in self.path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
        self.summary: dict[str, Any] | None = (
            self.lines[-1] if self.lines and self.lines[-1].get("event") == SUMMARY_EVENT else None
        )
        self.records: list[dict[str, Any]] = [
            r for r in self.lines if r.get("event") != SUMMARY_EVENT
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def events(self, kind: TraceEventKind | str | None = None) -> list[dict[str, Any]]:
        if kind is None:
            return list(self.records)
        return [r for r in self.records if r["event"] == str(kind)]

    def by_id(self, record_id: int) -> dict[str, Any]:
        return next(r for r in self.lines if r["id"] == record_id)

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [r for r in self.events(TraceEventKind.CALL) if r["method"] == method]

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_ids_sequential(self) -> VerificationResult:
        ids = [r["id"] for r in self.lines]
        violations = [
            f"position {i}: expected id {i + 1}, got {record_id}"
            for i, record_id in enumerate(ids)
            if record_id != i + 1
        ]
        return VerificationResult("ids_sequential", not violations, f"{len(ids)} records", violations)

    def check_summary_last(self) -> VerificationResult:
        if self.summary is None:
            return VerificationResult("summary_last", False, "no summary record")
        violations = []
        expected = len(self.records)
        if self.summary["total_steps"] != expected:
            violations.append(f"total_steps {self.summary['total_steps']} != {expected}")
        if self.summary["id"] != expected + 1:
            violations.append(f"summary id {self.summary['id']} != {expected + 1}")
        return VerificationResult("summary_last", not violations, violations=violations)

    def check_single_definitions(self) -> VerificationResult:
        definitions: dict[str, int] = {}
        violations: list[str] = []
        for record in self.records:
            definition = record.get("method_definition")
            if definition is None:
                continue
            signature = f"{record['file_path']}:{definition['start_line']}"
            if signature in definitions:
                violations.append(
                    f"{signature} defined in {definitions[signature]} and {record['id']}"
                )
            definitions[signature] = record["id"]
        for record in self.records:
            ref = record.get("method_definition_id")
            if ref is not None and "method_definition" not in self.by_id(ref):
                violations.append(f"record {record['id']} references {ref} without definition")
        return VerificationResult("single_definitions", not violations, violations=violations)

    def check_round_trip(self) -> VerificationResult:
        violations = []
        for record in self.records:
            try:
                TraceRecord.from_dict(record)
            except (KeyError, ValueError, TypeError) as exc:
                violations.append(f"record {record.get('id')}: {exc}")
        return VerificationResult("round_trip", not violations, violations=violations)

    def run_all(self) -> list[VerificationResult]:
        return [
            self.check_ids_sequential(),
            self.check_summary_last(),
            self.check_single_definitions(),
            self.check_round_trip(),
        ]

    def all_passed(self) -> bool:
        return all(r.passed for r in self.run_all())

    def report(self) -> str:
        return "\n".join(str(r) for r in self.run_all())
