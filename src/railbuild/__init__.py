"""
railbuild - incremental TypeScript to Lua build system for Train Simulator scripts.

This package provides:
- Virtual project assembly (entry point + shared overlay)
- Cross compilation through TypeScriptToLua
- Second-stage bytecode compilation through luac
- Payload injection and output distribution
- Debounced watch mode
"""

__version__ = "0.3.0"

from .config import BuildConfig
from .errors import (
    BuildConfigError,
    CompileError,
    CopyError,
    RailbuildError,
    ReadError,
    ToolchainError,
)
from .models import BuildReport, EntryResult, EntryStatus
from .orchestrator import BuildOrchestrator

__all__ = [
    "__version__",
    "BuildConfig",
    "BuildConfigError",
    "BuildOrchestrator",
    "BuildReport",
    "CompileError",
    "CopyError",
    "EntryResult",
    "EntryStatus",
    "RailbuildError",
    "ReadError",
    "ToolchainError",
]
