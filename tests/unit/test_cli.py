"""Tests for the command line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from chronotrace import __version__
from chronotrace.cli import main
from chronotrace.logger import setup_logging
from tests.helpers import TraceVerifier

SCRIPT = """\
import sys


def double(x):
    return x * 2


print(double(int(sys.argv[1])))
"""


@pytest.fixture
def script(tmp_path: Path) -> Path:
    path = tmp_path / "prog.py"
    path.write_text(SCRIPT, encoding="utf-8")
    return path


class TestVersion:
    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestRunCommand:
    def test_run_writes_trace(self, script: Path, tmp_path: Path) -> None:
        out = tmp_path / "out" / "prog.trace"
        result = CliRunner().invoke(main, ["run", str(script), "-o", str(out), "21"])
        assert result.exit_code == 0, result.output
        assert "42" in result.output

        v = TraceVerifier(out)
        assert v.all_passed(), v.report()
        calls = v.calls_to("double")
        assert len(calls) == 1
        assert calls[0]["method_definition"]["signature"] == "double(x)"
        assert calls[0]["param_values"]["x"]["value"] == "21"
        assert v.summary is not None
        assert v.summary["configuration"]["application_roots"] == [str(script.parent.resolve())]

    def test_default_output_path(self, script: Path) -> None:
        result = CliRunner().invoke(main, ["run", str(script), "1"])
        assert result.exit_code == 0, result.output
        assert Path(f"{script}.trace").exists()

    def test_script_failure_exit_code(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.py"
        bad.write_text("raise RuntimeError('nope')\n", encoding="utf-8")
        out = tmp_path / "bad.trace"
        result = CliRunner().invoke(main, ["run", str(bad), "-o", str(out)])
        assert result.exit_code == 1
        assert TraceVerifier(out).summary is not None

    def test_script_exit_code_propagates(self, tmp_path: Path) -> None:
        prog = tmp_path / "exits.py"
        prog.write_text("import sys\nsys.exit(3)\n", encoding="utf-8")
        result = CliRunner().invoke(main, ["run", str(prog), "-o", str(tmp_path / "e.trace")])
        assert result.exit_code == 3

    def test_unwritable_output(self, script: Path, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        out = blocker / "prog.trace"
        result = CliRunner().invoke(main, ["run", str(script), "-o", str(out), "1"])
        assert result.exit_code == 2
        assert "Error:" in result.output

    def test_relative_root_resolved_against_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "app.py").write_text(SCRIPT, encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        out = tmp_path / "app.trace"

        result = CliRunner().invoke(main, ["run", "--root", ".", "-o", str(out), "sub/app.py", "4"])

        assert result.exit_code == 0, result.output
        v = TraceVerifier(out)
        assert v.summary is not None
        assert v.summary["configuration"]["application_roots"] == [str(tmp_path.resolve())]
        assert v.calls_to("double")

    def test_log_file(self, script: Path, tmp_path: Path) -> None:
        out = tmp_path / "prog.trace"
        log_path = tmp_path / "chronotrace.log"
        try:
            result = CliRunner().invoke(
                main, ["run", "--log-file", str(log_path), "-o", str(out), str(script), "5"]
            )
        finally:
            setup_logging()
        assert result.exit_code == 0, result.output
        text = log_path.read_text(encoding="utf-8")
        assert "trace_session_started" in text
        assert str(out) in text
        assert TraceVerifier(out).summary is not None

    def test_log_file_cannot_be_trace(self, script: Path, tmp_path: Path) -> None:
        out = tmp_path / "prog.trace"
        try:
            result = CliRunner().invoke(
                main, ["run", "--log-file", str(out), "-o", str(out), str(script), "5"]
            )
        finally:
            setup_logging()
        assert result.exit_code == 2
        assert "Error:" in result.output
        assert "trace_summary" not in out.read_text(encoding="utf-8")

    def test_missing_script(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(main, ["run", str(tmp_path / "missing.py")])
        assert result.exit_code != 0


class TestSummaryCommand:
    def test_prints_summary(self, script: Path, tmp_path: Path) -> None:
        out = tmp_path / "prog.trace"
        runner = CliRunner()
        runner.invoke(main, ["run", str(script), "-o", str(out), "2"])
        result = runner.invoke(main, ["summary", str(out)])
        assert result.exit_code == 0
        summary = json.loads(result.output)
        assert summary["event"] == "trace_summary"
        assert summary["total_steps"] > 0

    def test_missing_summary(self, tmp_path: Path) -> None:
        trace = tmp_path / "partial.trace"
        trace.write_text("", encoding="utf-8")
        result = CliRunner().invoke(main, ["summary", str(trace)])
        assert result.exit_code == 1

    def test_malformed_trace(self, tmp_path: Path) -> None:
        trace = tmp_path / "broken.trace"
        trace.write_text("garbage\n", encoding="utf-8")
        result = CliRunner().invoke(main, ["summary", str(trace)])
        assert result.exit_code == 1
