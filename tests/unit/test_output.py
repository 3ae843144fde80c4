"""Tests for user-facing output formatting."""

from unittest.mock import patch

from railbuild import output
from railbuild.models import BuildReport, Diagnostic, DiagnosticSeverity, EntryResult, EntryStatus


def _text() -> str:
    return output.get_console().file.getvalue()


def test_timestamp_format():
    with patch("railbuild.output.get_elapsed", return_value=83.456):
        assert output.format_timestamp() == "01:23.46"


def test_lines_are_timestamped():
    output.log("Transpiling all ...")
    line = _text().splitlines()[0]
    assert line.endswith("Transpiling all ...")
    minutes, seconds = line.split(" ")[0].split(":")
    assert minutes.isdigit() and float(seconds) >= 0


def test_verbose_only_messages():
    output.log("hidden", verbose_only=True)
    assert "hidden" not in _text()
    output.set_verbose(True)
    output.log("shown", verbose_only=True)
    assert "shown" in _text()


def test_entry_success_line():
    output.log_entry_result(EntryResult("mod/a.ts", EntryStatus.SUCCESS, elapsed=1.234))
    assert "mod/a.ts 1234ms" in _text()


def test_entry_failure_line():
    result = EntryResult("mod/a.ts", EntryStatus.FAILED, error="Cannot read payware/x.out", error_type="ReadError")
    output.log_entry_result(result)
    assert "mod/a.ts FAILED ReadError: Cannot read payware/x.out" in _text()


def test_report_summary():
    report = BuildReport(
        results=[
            EntryResult("mod/a.ts", EntryStatus.SUCCESS, elapsed=0.5),
            EntryResult("mod/b.ts", EntryStatus.FAILED, error="boom", error_type="CopyError"),
        ],
        total_elapsed=1.5,
    )
    output.log_report(report)
    text = _text()
    assert "mod/a.ts 500ms" in text
    assert "mod/b.ts FAILED CopyError: boom" in text
    assert "Built 1/2 entry points in 1.50s (1 failed)" in text


def test_informational_diagnostics_need_verbose():
    diagnostics = [
        Diagnostic(DiagnosticSeverity.MESSAGE, "Version 5.3.3"),
        Diagnostic(DiagnosticSeverity.WARNING, "unused", "lib/frp.ts", 1, 1, 6133),
    ]
    output.log_diagnostics("mod/a.ts", diagnostics)
    text = _text()
    assert "Version 5.3.3" not in text
    assert "mod/a.ts: lib/frp.ts(1,1): warning TS6133: unused" in text
