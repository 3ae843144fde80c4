"""Build orchestrator.

Runs the per-entry pipeline:

    assemble -> cross-compile -> inject payloads -> second-stage compile
    -> write dist/<path>.out -> distribute copies

for every entry point concurrently on one event loop. Each entry is its own
failure domain: any error inside an entry's pipeline becomes a failed
EntryResult and never affects sibling entries. Concurrency is bounded by a
semaphore of `jobs` slots, and rebuilds of one entry are serialized through a
TargetQueue so two runs never write the same output path at once.
"""

import asyncio
import logging
import time
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from . import output
from .assembler import VirtualProjectAssembler
from .config import BuildConfig
from .distributor import CopyTable, OutputDistributor
from .errors import BuildConfigError, CompileError, CopyError, RailbuildError
from .models import BuildReport, CompiledArtifact, Diagnostic, EntryResult, EntryStatus
from .payload import PayloadInjector
from .second_stage import SecondStageCompiler
from .target_queue import TargetQueue
from .transpiler import CompileOptions, CrossCompiler, TstlCompiler, read_base_options

logger = logging.getLogger(__name__)

_DEFAULT = object()


class BuildOrchestrator:
    """Builds entry points through the full pipeline.

    Args:
        config: Build configuration
        cross_compiler: CrossCompiler to use (default: TstlCompiler from config)
        second_stage: SecondStageCompiler to use, or None to emit Lua text as the
            artifact (default: built from config.luac_command, None if empty)
    """

    def __init__(
        self,
        config: BuildConfig,
        cross_compiler: Optional[CrossCompiler] = None,
        second_stage: Any = _DEFAULT,
    ) -> None:
        self._config = config
        self._assembler = VirtualProjectAssembler(config)
        if cross_compiler is None:
            cross_compiler = TstlCompiler(config.resolve_command(config.tstl_command))
        self._cross_compiler = cross_compiler
        if second_stage is _DEFAULT:
            luac = config.resolve_command(config.luac_command)
            second_stage = SecondStageCompiler(luac, cwd=str(config.project_dir)) if luac else None
        self._second_stage: Optional[SecondStageCompiler] = second_stage
        self._distributor = OutputDistributor(config.output_root, CopyTable(config.copy_rules))
        self._queue: TargetQueue[EntryResult] = TargetQueue()
        self._slots = asyncio.Semaphore(config.jobs)

    @property
    def config(self) -> BuildConfig:
        return self._config

    @property
    def assembler(self) -> VirtualProjectAssembler:
        return self._assembler

    def entry_points(self) -> list[str]:
        """Entry points selected by the configuration's filters.

        Raises:
            BuildConfigError: If there are no entry points, or the filters match none
        """
        entries = self._assembler.glob_entry_points(self._config.entry_filters)
        if not entries:
            raise BuildConfigError(f"No entry points found in {self._config.source_root / self._config.entry_dir}")
        return entries

    async def build_all(self) -> BuildReport:
        """Build every entry point concurrently.

        Returns:
            BuildReport with one result per entry, in entry order

        Raises:
            BuildConfigError: If no entry point is selected
        """
        start = time.monotonic()
        entries = self.entry_points()
        logger.info(f"Building {len(entries)} entry points")

        # One injector per cycle: payload assets are read at most once per build
        injector = PayloadInjector(self._config.payload_paths())
        results = await asyncio.gather(*(self._submit(entry, injector) for entry in entries))
        return BuildReport(results=list(results), total_elapsed=time.monotonic() - start)

    async def build_one(self, entry: str) -> EntryResult:
        """Build a single entry point (the watch scheduler's rebuild path).

        Args:
            entry: Entry path relative to the source root

        Returns:
            The entry's result; failures are reported, not raised
        """
        injector = PayloadInjector(self._config.payload_paths())
        return await self._submit(entry, injector)

    async def _submit(self, entry: str, injector: PayloadInjector) -> EntryResult:
        return await self._queue.submit(entry, lambda: self._run_isolated(entry, injector))

    async def _run_isolated(self, entry: str, injector: PayloadInjector) -> EntryResult:
        async with self._slots:
            start = time.monotonic()
            diagnostics: list[Diagnostic] = []
            try:
                outputs = await self._run_pipeline(entry, injector, diagnostics)
            except RailbuildError as e:
                if isinstance(e, CompileError):
                    diagnostics.extend(e.diagnostics)
                logger.debug(f"{entry} failed: {type(e).__name__}: {e}")
                return EntryResult(
                    entry=entry,
                    status=EntryStatus.FAILED,
                    elapsed=time.monotonic() - start,
                    error=str(e),
                    error_type=type(e).__name__,
                    diagnostics=diagnostics,
                )
            except Exception as e:
                logger.debug(f"Unexpected error building {entry}", exc_info=True)
                return EntryResult(
                    entry=entry,
                    status=EntryStatus.FAILED,
                    elapsed=time.monotonic() - start,
                    error=str(e) or repr(e),
                    error_type=type(e).__name__,
                    diagnostics=diagnostics,
                )

            return EntryResult(
                entry=entry,
                status=EntryStatus.SUCCESS,
                elapsed=time.monotonic() - start,
                diagnostics=diagnostics,
                outputs=outputs,
            )

    async def _run_pipeline(self, entry: str, injector: PayloadInjector, diagnostics: list[Diagnostic]) -> list[Path]:
        project = await self._assembler.assemble(entry)

        base_options = await asyncio.to_thread(read_base_options, self._config.tsconfig_path)
        options = CompileOptions.for_entry(entry, self._config.compiler_types, base_options)
        result = await self._cross_compiler.compile(project, options)
        diagnostics.extend(result.diagnostics)
        if result.diagnostics:
            output.log_diagnostics(entry, result.diagnostics)

        written: list[Path] = []
        for transpiled in result.files:
            if transpiled.lua is None:
                continue
            relative = self._output_relative_path(transpiled.out_path)

            if self._config.lua_only:
                artifact = CompiledArtifact(
                    self._config.output_root / relative.with_suffix(".lua"), transpiled.lua.encode("utf-8")
                )
                await asyncio.to_thread(_write_artifact, artifact, transpiled.out_path)
                written.append(artifact.output_path)
                continue

            text = await injector.inject(transpiled.lua)
            if self._second_stage is not None:
                data = await self._second_stage.compile(text)
            else:
                data = text.encode("utf-8")

            relative_out = relative.with_suffix(".out")
            artifact = CompiledArtifact(self._config.output_root / relative_out, data)
            await asyncio.to_thread(_write_artifact, artifact, transpiled.out_path)
            written.append(artifact.output_path)
            written.extend(await self._distributor.distribute(str(relative_out)))

        return written

    def _output_relative_path(self, out_path: str) -> PurePosixPath:
        """Map a compiler output path (relative to the source root) into the output tree.

        Outputs under the entry directory ("mod/") lose that prefix so dist/
        mirrors the game's Assets layout.
        """
        path = PurePosixPath(out_path)
        entry_dir = PurePosixPath(self._config.entry_dir)
        if path.parts[: len(entry_dir.parts)] == entry_dir.parts:
            return path.relative_to(entry_dir)
        return path


def _write_artifact(artifact: CompiledArtifact, source: str) -> None:
    try:
        artifact.output_path.parent.mkdir(parents=True, exist_ok=True)
        artifact.output_path.write_bytes(artifact.data)
    except OSError as e:
        raise CopyError(Path(source), artifact.output_path, e.strerror or str(e)) from e
