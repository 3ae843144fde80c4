"""TypeScript-to-Lua cross compiler invocation.

The cross compiler is an external tool (TypeScriptToLua). There is no
in-process Python binding, so a VirtualProject is materialized into a private
temporary directory together with a generated tsconfig.json, the "tstl"
executable is run there, and every emitted .lua file is collected. The
directory is removed afterwards; nothing else on disk is touched.

Compiler diagnostics are parsed from tstl's non-pretty output:

    lib/frp.ts(12,5): error TS2322: Type 'string' is not assignable to type 'number'.
    error TS5023: Unknown compiler option 'foo'.

They are returned to the caller, never raised. CompileError is reserved for
total failure (the tool cannot start, or it fails without emitting anything).
"""

import asyncio
import json
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

import json5

from .errors import CompileError
from .models import CompileResult, Diagnostic, DiagnosticSeverity, TranspiledFile, VirtualProject
from .paths import to_posix
from .subprocess_utils import run_piped

logger = logging.getLogger(__name__)

OUT_DIR_NAME = "__railbuild_out__"

_LOCATED_DIAGNOSTIC = re.compile(
    r"^(?P<file>.+?)\((?P<line>\d+),(?P<column>\d+)\): "
    r"(?P<severity>error|warning|message)(?: TS(?:TL)?(?P<code>\d+))?: (?P<message>.*)$"
)
_GLOBAL_DIAGNOSTIC = re.compile(r"^(?P<severity>error|warning|message)(?: TS(?:TL)?(?P<code>\d+))?: (?P<message>.*)$")

# Compiler options owned by the invoker; values from the project tsconfig are replaced
_RESERVED_OPTIONS = ("outDir", "rootDir", "baseUrl", "types", "typeRoots", "noEmit", "composite", "incremental")


@dataclass(frozen=True)
class CompileOptions:
    """Fixed cross compiler configuration for one compilation unit.

    Attributes:
        entry_path: Virtual path of the bundle entry
        bundle_path: Virtual path of the bundled Lua output
        lua_target: Lua dialect/version to emit
        strict: TypeScript strict mode
        types: Values for the "types" compiler option
        type_roots: Directories (virtual paths) searched for type packages
        base_options: Extra compiler options merged underneath the fixed ones
    """

    entry_path: str
    bundle_path: str
    lua_target: str = "5.0"
    strict: bool = True
    types: tuple[str, ...] = ()
    type_roots: tuple[str, ...] = ("@types", "node_modules/@types")
    base_options: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @classmethod
    def for_entry(
        cls,
        entry_path: str,
        types: Sequence[str] = (),
        base_options: Optional[dict[str, Any]] = None,
    ) -> "CompileOptions":
        """Build options for an entry, deriving the bundle path as a .lua sibling."""
        entry = PurePosixPath(to_posix(entry_path))
        bundle = entry.with_suffix(".lua")
        return cls(
            entry_path=str(entry),
            bundle_path=str(bundle),
            types=tuple(types),
            base_options=dict(base_options or {}),
        )

    def to_tsconfig(self) -> dict[str, Any]:
        """Render the tsconfig.json handed to the compiler."""
        compiler_options = {k: v for k, v in self.base_options.items() if k not in _RESERVED_OPTIONS}
        compiler_options.update(
            {
                "target": "ESNext",
                "moduleResolution": "node",
                "strict": self.strict,
                "baseUrl": ".",
                "rootDir": ".",
                "outDir": OUT_DIR_NAME,
                "types": list(self.types),
                "typeRoots": list(self.type_roots),
            }
        )
        return {
            "compilerOptions": compiler_options,
            "tstl": {
                "luaTarget": self.lua_target,
                "luaLibImport": "inline",
                "sourceMapTraceback": False,
                "luaBundle": self.bundle_path,
                "luaBundleEntry": self.entry_path,
            },
            "files": [self.entry_path],
            "include": ["@types"],
        }


@runtime_checkable
class CrossCompiler(Protocol):
    """Anything that turns a VirtualProject into Lua files plus diagnostics."""

    async def compile(self, project: VirtualProject, options: CompileOptions) -> CompileResult:
        ...


class TstlCompiler:
    """CrossCompiler backed by the TypeScriptToLua command-line tool.

    Args:
        command: tstl command line (e.g. ["/project/node_modules/.bin/tstl"])
        temp_root: Parent directory for per-compilation work directories
            (defaults to the system temp directory)
    """

    def __init__(self, command: Sequence[str], temp_root: Optional[Path] = None) -> None:
        if not command:
            raise ValueError("Cross compiler command must not be empty")
        self._command = list(command)
        self._temp_root = temp_root

    async def compile(self, project: VirtualProject, options: CompileOptions) -> CompileResult:
        """Compile a virtual project.

        Args:
            project: Files to compile
            options: Fixed compiler configuration

        Returns:
            CompileResult with emitted Lua files and diagnostics

        Raises:
            CompileError: If the compiler cannot start or fails without output
        """
        work_dir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="railbuild-", dir=self._temp_root))
        try:
            await asyncio.to_thread(_materialize, work_dir, project, options)
            cmd = [*self._command, "--project", "tsconfig.json", "--pretty", "false"]
            try:
                returncode, stdout, stderr = await run_piped(cmd, cwd=str(work_dir))
            except OSError as e:
                raise CompileError(f"{self._command[0]} could not be started: {e}") from e

            output = stdout.decode("utf-8", errors="replace") + stderr.decode("utf-8", errors="replace")
            diagnostics = parse_diagnostics(output, work_dir)
            files = await asyncio.to_thread(_collect_outputs, work_dir / OUT_DIR_NAME)
        finally:
            await asyncio.to_thread(shutil.rmtree, work_dir, True)

        if returncode != 0 and not any(f.lua for f in files):
            first_error = next((d for d in diagnostics if d.severity == DiagnosticSeverity.ERROR), None)
            reason = first_error.format() if first_error else f"exit code {returncode}"
            raise CompileError(f"{options.entry_path}: compiler emitted nothing ({reason})", diagnostics)

        logger.debug(
            f"Cross-compiled {options.entry_path}: {len(files)} files, {len(diagnostics)} diagnostics "
            f"(exit code {returncode})"
        )
        return CompileResult(files=files, diagnostics=diagnostics)


def read_base_options(tsconfig_path: Path) -> dict[str, Any]:
    """Read compilerOptions from a project tsconfig.json.

    The file is parsed as JSON5, so comments and trailing commas are
    accepted. "extends" chains are followed: a relative reference is resolved
    against the extending file's directory, a bare one against node_modules.
    Options of the extending file override inherited ones. A missing file
    yields no options.

    Raises:
        CompileError: If a file in the chain cannot be read or parsed, or the
            chain is circular
    """
    if not tsconfig_path.is_file():
        return {}
    return _read_options_chain(tsconfig_path, ())


def _read_options_chain(path: Path, seen: tuple[Path, ...]) -> dict[str, Any]:
    resolved = path.resolve()
    if resolved in seen:
        raise CompileError(f"Circular extends in {path}")
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CompileError(f"Cannot read {path}: {e}") from e
    try:
        data = json5.loads(raw)
    except ValueError as e:
        raise CompileError(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        return {}

    options: dict[str, Any] = {}
    extends = data.get("extends")
    bases = [extends] if isinstance(extends, str) else extends if isinstance(extends, list) else []
    for base in bases:
        options.update(_read_options_chain(_resolve_extends(path, base), (*seen, resolved)))

    own = data.get("compilerOptions", {})
    if isinstance(own, dict):
        options.update(own)
    return options


def _resolve_extends(config_path: Path, reference: str) -> Path:
    if reference.startswith((".", "/")) or Path(reference).is_absolute():
        candidate = config_path.parent / reference
    else:
        # Package reference: walk up looking for node_modules/<reference>
        candidate = None
        for directory in (config_path.parent, *config_path.parent.parents):
            package = directory / "node_modules" / reference
            if package.exists() or package.with_name(package.name + ".json").exists():
                candidate = package
                break
        if candidate is None:
            raise CompileError(f"{config_path}: cannot find base config {reference!r}")

    if candidate.is_dir():
        candidate = candidate / "tsconfig.json"
    elif not candidate.is_file() and candidate.suffix != ".json":
        candidate = candidate.with_name(candidate.name + ".json")
    if not candidate.is_file():
        raise CompileError(f"{config_path}: cannot find base config {reference!r}")
    return candidate


def parse_diagnostics(output: str, work_dir: Optional[Path] = None) -> list[Diagnostic]:
    """Parse tsc/tstl non-pretty output into Diagnostics.

    Indented lines continue the previous diagnostic. Other unrecognized,
    non-empty lines become MESSAGE diagnostics so no compiler output is lost.
    Paths inside work_dir are reported relative to it.
    """
    diagnostics: list[Diagnostic] = []
    pending: Optional[dict[str, Any]] = None

    def flush() -> None:
        nonlocal pending
        if pending is not None:
            diagnostics.append(Diagnostic(**pending))
            pending = None

    for line in output.splitlines():
        if not line.strip():
            continue
        if pending is not None and line[:1].isspace():
            pending["message"] += "\n" + line.strip()
            continue

        flush()
        located = _LOCATED_DIAGNOSTIC.match(line)
        if located:
            pending = {
                "severity": DiagnosticSeverity(located["severity"]),
                "message": located["message"],
                "file": _relative_to_work_dir(located["file"], work_dir),
                "line": int(located["line"]),
                "column": int(located["column"]),
                "code": int(located["code"]) if located["code"] else None,
            }
            continue
        bare = _GLOBAL_DIAGNOSTIC.match(line)
        if bare:
            pending = {
                "severity": DiagnosticSeverity(bare["severity"]),
                "message": bare["message"],
                "code": int(bare["code"]) if bare["code"] else None,
            }
            continue
        pending = {"severity": DiagnosticSeverity.MESSAGE, "message": line.strip()}

    flush()
    return diagnostics


def _relative_to_work_dir(file: str, work_dir: Optional[Path]) -> str:
    if work_dir is None:
        return to_posix(file)
    try:
        return to_posix(Path(file).relative_to(work_dir))
    except ValueError:
        return to_posix(file)


def _materialize(work_dir: Path, project: VirtualProject, options: CompileOptions) -> None:
    for virtual_path, text in project.items():
        target = work_dir / virtual_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
    with open(work_dir / "tsconfig.json", "w", encoding="utf-8") as f:
        json.dump(options.to_tsconfig(), f, indent=2)


def _collect_outputs(out_dir: Path) -> list[TranspiledFile]:
    if not out_dir.is_dir():
        return []
    files = []
    for path in sorted(out_dir.rglob("*.lua")):
        text = path.read_text(encoding="utf-8")
        files.append(TranspiledFile(out_path=to_posix(path.relative_to(out_dir)), lua=text if text.strip() else None))
    return files
