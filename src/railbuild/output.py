"""
Centralized user-facing output for railbuild.

Every line is prefixed with the elapsed time since launch in MM:SS.cc format
so slow entries are easy to spot in long watch sessions. Rendering goes
through a Rich console; colors are dropped automatically when output is not
a terminal.

Example output:
    00:00.02 railbuild v0.3.0
    00:00.03 Building 24 entry points...
    00:03.41 mod/Assets/RSC/M8Pack01/RailVehicles/Electric/M8MTA/Scripts/M8_EngineScript.ts 2210ms
    00:03.97 mod/Assets/Reppo/AEM7/RailVehicles/Scripts/AEM7_EngineScript.ts FAILED ToolchainError: ...
    00:04.10 Built 23/24 entry points in 4.07s

Usage:
    from railbuild.output import log, log_report

    log("Transpiling all ...")
    log_report(report)
"""

import time
from typing import Optional

from rich.console import Console
from rich.text import Text

from .models import BuildReport, Diagnostic, DiagnosticSeverity, EntryResult, EntryStatus

_start_time: Optional[float] = None
_console: Console = Console(highlight=False, soft_wrap=True)
_verbose: bool = False


def init_timer(console: Optional[Console] = None) -> None:
    """
    Initialize the program timer.

    Args:
        console: Optional Rich console to render to (defaults to stdout)
    """
    global _start_time, _console
    _start_time = time.monotonic()
    if console is not None:
        _console = console


def set_verbose(verbose: bool) -> None:
    """Enable or disable verbose-only messages."""
    global _verbose
    _verbose = verbose


def get_console() -> Console:
    """Return the console all output goes to."""
    return _console


def get_elapsed() -> float:
    """Seconds since init_timer() (initializing it on first use)."""
    if _start_time is None:
        init_timer()
    return time.monotonic() - _start_time  # type: ignore[operator]


def format_timestamp() -> str:
    """Format the elapsed time as MM:SS.cc."""
    elapsed = get_elapsed()
    minutes = int(elapsed // 60)
    seconds = elapsed % 60
    return f"{minutes:02d}:{seconds:05.2f}"


def _print(message: Text) -> None:
    line = Text(format_timestamp() + " ", style="dim")
    line.append_text(message)
    _console.print(line)


def log(message: str, verbose_only: bool = False) -> None:
    """Log a plain message."""
    if verbose_only and not _verbose:
        return
    _print(Text(message))


def log_header(title: str, version: str) -> None:
    _print(Text(f"{title} v{version}", style="bold"))


def log_warning(message: str) -> None:
    _print(Text(f"WARNING: {message}", style="yellow"))


def log_error(message: str) -> None:
    _print(Text(f"ERROR: {message}", style="bold red"))


def log_diagnostics(entry: str, diagnostics: list[Diagnostic]) -> None:
    """Log compiler diagnostics for an entry.

    Errors and warnings are always shown; informational messages only in
    verbose mode.
    """
    for diagnostic in diagnostics:
        if diagnostic.severity == DiagnosticSeverity.MESSAGE and not _verbose:
            continue
        style = "red" if diagnostic.severity == DiagnosticSeverity.ERROR else "yellow"
        line = Text(f"{entry}: ", style="dim")
        line.append(diagnostic.format(), style=style)
        _print(line)


def log_entry_result(result: EntryResult) -> None:
    """Log the one-line outcome of an entry: elapsed time, or the failure."""
    line = Text(result.entry, style="bright_black")
    if result.status == EntryStatus.SUCCESS:
        line.append(f" {result.elapsed * 1000:.0f}ms")
    else:
        error = f"{result.error_type}: {result.error}" if result.error_type else result.error
        line.append(" FAILED ", style="bold red")
        line.append(error, style="red")
    _print(line)


def log_report(report: BuildReport) -> None:
    """Log every entry result followed by a summary line."""
    for result in report.results:
        log_entry_result(result)
    total = len(report.results)
    summary = f"Built {report.completed_count}/{total} entry points in {report.total_elapsed:.2f}s"
    if report.failed_count:
        summary += f" ({report.failed_count} failed)"
    style = "green" if report.success else "red"
    _print(Text(summary, style=style))
