"""Error taxonomy for the build pipeline.

Every per-entry failure raised inside the pipeline derives from
RailbuildError. The orchestrator catches these at the entry boundary and
converts them into failed EntryResults, so one entry never aborts its
siblings or the watch loop.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Diagnostic


class RailbuildError(Exception):
    """Base class for all railbuild errors."""

    pass


class BuildConfigError(RailbuildError):
    """Invalid project configuration or an empty entry point selection."""

    pass


class ReadError(RailbuildError):
    """A required source file or referenced payload asset could not be read."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")


class CompileError(RailbuildError):
    """The cross compiler failed outright and produced no output.

    Ordinary compiler diagnostics are never raised; they travel alongside the
    output in the CompileResult. Whatever diagnostics were collected before
    the failure are kept on the exception.
    """

    def __init__(self, message: str, diagnostics: Optional[list["Diagnostic"]] = None):
        self.diagnostics = diagnostics or []
        super().__init__(message)


class ToolchainError(RailbuildError):
    """An external compiler process exited with a nonzero status or could not start."""

    def __init__(self, command: list[str], returncode: Optional[int], stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        if returncode is None:
            message = f"{command[0]} could not be started"
        else:
            message = f"{command[0]} exited with code {returncode}"
        detail = stderr.strip()
        if detail:
            # Keep the first line only; the full text stays on the exception
            message += f": {detail.splitlines()[0]}"
        super().__init__(message)


class CopyError(RailbuildError):
    """Writing or copying a finished artifact failed."""

    def __init__(self, source: Path, destination: Path, reason: str):
        self.source = source
        self.destination = destination
        self.reason = reason
        super().__init__(f"Cannot copy {source} to {destination}: {reason}")
