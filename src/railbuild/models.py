"""Data models for the build pipeline.

Defines the dataclasses passed between pipeline stages:
- VirtualFile / VirtualProject: in-memory source snapshot for one compilation unit
- Diagnostic: a message reported by the cross compiler
- TranspiledFile / CompileResult: cross compiler output
- CompiledArtifact: final bytes for one emitted file
- EntryResult / BuildReport: per-entry and per-cycle outcomes
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, Mapping, Optional


@dataclass(frozen=True)
class VirtualFile:
    """Snapshot of one source file taken at assembly time."""

    path: str
    text: str


class VirtualProject(Mapping[str, str]):
    """Read-only mapping of relative path -> file text for one compilation unit.

    Contains exactly one entry file plus the full shared overlay. Keys are
    unique; constructing a project with a repeated path raises ValueError.

    Args:
        entry: The entry point's virtual file.
        overlay: Shared overlay files (library sources and declarations).
    """

    def __init__(self, entry: VirtualFile, overlay: list[VirtualFile]) -> None:
        files: dict[str, str] = {entry.path: entry.text}
        for vf in overlay:
            if vf.path in files:
                raise ValueError(f"Duplicate virtual path: {vf.path}")
            files[vf.path] = vf.text
        self._entry_path = entry.path
        self._files = MappingProxyType(files)

    @property
    def entry_path(self) -> str:
        """Relative path of the entry file."""
        return self._entry_path

    @property
    def overlay_paths(self) -> list[str]:
        """Relative paths of every overlay file."""
        return [p for p in self._files if p != self._entry_path]

    def __getitem__(self, key: str) -> str:
        return self._files[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"VirtualProject(entry={self._entry_path!r}, files={len(self._files)})"


class DiagnosticSeverity(Enum):
    """Severity of a cross compiler diagnostic."""

    ERROR = "error"
    WARNING = "warning"
    MESSAGE = "message"


@dataclass(frozen=True)
class Diagnostic:
    """A single diagnostic reported by the cross compiler.

    Attributes:
        severity: Error, warning or informational message
        message: Diagnostic text (may span several lines)
        file: Source file the diagnostic refers to, if any
        line: 1-based line number, if known
        column: 1-based column number, if known
        code: Compiler diagnostic code (e.g. 2322 for TS2322), if known
    """

    severity: DiagnosticSeverity
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    code: Optional[int] = None

    def format(self) -> str:
        """Format the diagnostic the way tsc prints it without --pretty."""
        location = ""
        if self.file:
            location = self.file
            if self.line is not None:
                location += f"({self.line},{self.column or 1})"
            location += ": "
        code = f" TS{self.code}" if self.code is not None else ""
        return f"{location}{self.severity.value}{code}: {self.message}"


@dataclass(frozen=True)
class TranspiledFile:
    """One file emitted by the cross compiler.

    Attributes:
        out_path: Output path relative to the source root (e.g. "mod/.../Engine.lua")
        lua: Generated Lua text, or None when the input produced no code
            (pure declaration files)
    """

    out_path: str
    lua: Optional[str]


@dataclass(frozen=True)
class CompileResult:
    """Cross compiler output: emitted files plus diagnostics."""

    files: list[TranspiledFile]
    diagnostics: list[Diagnostic]


@dataclass(frozen=True)
class CompiledArtifact:
    """Final artifact bytes paired with the path they were written to."""

    output_path: Path
    data: bytes


class EntryStatus(Enum):
    """Outcome of one entry point's pipeline run."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class EntryResult:
    """Outcome of building one entry point.

    Attributes:
        entry: Entry point path relative to the source root
        status: Final status
        elapsed: Wall-clock seconds spent in the pipeline
        error: Human-readable error description when FAILED
        error_type: Exception class name when FAILED
        diagnostics: Diagnostics reported by the cross compiler
        outputs: Every file written (primary artifacts and copies)
    """

    entry: str
    status: EntryStatus
    elapsed: float = 0.0
    error: str = ""
    error_type: str = ""
    diagnostics: list[Diagnostic] = field(default_factory=list)
    outputs: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == EntryStatus.SUCCESS


@dataclass
class BuildReport:
    """Aggregated result of one build cycle.

    Attributes:
        results: One EntryResult per entry point, in entry order
        total_elapsed: Wall-clock seconds for the whole cycle
    """

    results: list[EntryResult]
    total_elapsed: float

    @property
    def success(self) -> bool:
        """True if no entry failed."""
        return all(r.status != EntryStatus.FAILED for r in self.results)

    @property
    def completed_count(self) -> int:
        """Number of entries built successfully."""
        return sum(1 for r in self.results if r.status == EntryStatus.SUCCESS)

    @property
    def failed_count(self) -> int:
        """Number of entries that failed."""
        return sum(1 for r in self.results if r.status == EntryStatus.FAILED)
