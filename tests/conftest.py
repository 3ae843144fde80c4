"""Pytest configuration and shared fixtures for railbuild tests."""

import io
import sys
import textwrap
from pathlib import Path
from typing import Optional

import pytest
from rich.console import Console

from railbuild.config import BuildConfig
from railbuild.errors import CompileError
from railbuild.models import CompileResult, Diagnostic, TranspiledFile, VirtualProject
from railbuild.transpiler import CompileOptions

ENTRY_A = "mod/Assets/RSC/Pack/Scripts/Engine.ts"
ENTRY_B = "mod/Assets/DTG/Pack/Scripts/Tender.ts"


def write_file(root: Path, relative: str, text: str) -> Path:
    """Write text to root/relative, creating parent directories."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def isolate_output_globals():
    """Route railbuild.output to an in-memory console and restore it afterwards.

    The recording console is exposed as output.get_console(); tests read it
    with console.file.getvalue().
    """
    from railbuild import output

    original_console = output._console
    original_start_time = output._start_time
    original_verbose = output._verbose

    output._console = Console(file=io.StringIO(), width=200, color_system=None, highlight=False, soft_wrap=True)
    output._start_time = None
    output._verbose = False

    yield

    output._console = original_console
    output._start_time = original_start_time
    output._verbose = original_verbose


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A minimal mod project: two entry points plus a shared overlay."""
    root = tmp_path / "project"
    write_file(root, f"src/{ENTRY_A}", 'import * as frp from "lib/frp";\nconst me = new Engine();\n')
    write_file(root, f"src/{ENTRY_B}", "const tender = 1;\n")
    write_file(root, "src/lib/frp.ts", "export function map() {}\n")
    write_file(root, "src/@types/railworks.d.ts", "declare class Engine {}\n")
    write_file(root, "src/build.json", '{"version": 1}\n')
    write_file(root, "node_modules/lua-types/5.0.d.ts", "/// <reference types='lua-types/core/index-5.0' />\n")
    return root


@pytest.fixture
def config(project_dir: Path) -> BuildConfig:
    """Config for project_dir with no second stage, payloads or copy rules."""
    return BuildConfig(
        project_dir=project_dir,
        luac_command=(),
        payloads={},
        copy_rules=(),
        jobs=4,
    )


@pytest.fixture
def make_script(tmp_path: Path):
    """Factory writing a Python script and returning a command that runs it."""

    def _make(name: str, source: str) -> tuple[str, ...]:
        script = write_file(tmp_path / "scripts", f"{name}.py", textwrap.dedent(source))
        return (sys.executable, str(script))

    return _make


class FakeCrossCompiler:
    """In-process CrossCompiler.

    Emits one bundle per entry whose Lua is "-- lua\\n" followed by the entry's
    source text (or `lua_by_entry[entry]` when set). Entries listed in
    `fail_entries` raise CompileError.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[VirtualProject, CompileOptions]] = []
        self.lua_by_entry: dict[str, Optional[str]] = {}
        self.diagnostics: list[Diagnostic] = []
        self.fail_entries: set[str] = set()

    async def compile(self, project: VirtualProject, options: CompileOptions) -> CompileResult:
        self.calls.append((project, options))
        if options.entry_path in self.fail_entries:
            raise CompileError(f"{options.entry_path}: compiler emitted nothing", list(self.diagnostics))
        if options.entry_path in self.lua_by_entry:
            lua = self.lua_by_entry[options.entry_path]
        else:
            lua = "-- lua\n" + project[options.entry_path]
        return CompileResult(
            files=[TranspiledFile(out_path=options.bundle_path, lua=lua)],
            diagnostics=list(self.diagnostics),
        )

    @property
    def compiled_entries(self) -> list[str]:
        return [options.entry_path for _, options in self.calls]


@pytest.fixture
def fake_compiler() -> FakeCrossCompiler:
    return FakeCrossCompiler()
