"""Virtual project assembly.

Each entry point is compiled as an isolated unit: the entry file plus the
shared overlay (library sources, declaration stubs, build.json). The
assembler snapshots those files into a VirtualProject. Nothing is cached
between calls, so every assembly reflects the files on disk at that moment.
"""

import asyncio
import fnmatch
import logging
from pathlib import Path
from typing import Iterable, Optional

from .config import BuildConfig
from .errors import BuildConfigError, ReadError
from .models import VirtualFile, VirtualProject
from .paths import to_posix

logger = logging.getLogger(__name__)


class VirtualProjectAssembler:
    """Discovers entry points and overlay files and snapshots them into VirtualProjects.

    Args:
        config: Build configuration (paths and globs)
    """

    def __init__(self, config: BuildConfig) -> None:
        self._config = config

    def glob_entry_points(self, filters: Optional[Iterable[str]] = None) -> list[str]:
        """Find entry points under the source root.

        Args:
            filters: Optional glob patterns restricting the selection. Patterns are
                matched against the entry path relative to the source root; a
                leading "<source_dir>/" is accepted and stripped.

        Returns:
            Sorted entry paths relative to the source root, "/"-separated

        Raises:
            BuildConfigError: If filters are given but match no entry point
        """
        source_root = self._config.source_root
        entries = sorted(
            to_posix(p.relative_to(source_root)) for p in source_root.glob(self._config.entry_glob) if p.is_file()
        )

        patterns = [self._strip_source_prefix(f) for f in (filters or ())]
        if patterns:
            selected = [e for e in entries if any(fnmatch.fnmatchcase(e, pat) for pat in patterns)]
            if not selected:
                raise BuildConfigError(f"No entry points matched: {', '.join(patterns)}")
            entries = selected

        logger.debug(f"Found {len(entries)} entry points under {source_root}")
        return entries

    def glob_overlay_files(self) -> list[tuple[str, Path]]:
        """Find every overlay file.

        Returns:
            (virtual path, absolute path) pairs in glob order, without duplicates
        """
        project_dir = self._config.project_dir
        seen: set[str] = set()
        files: list[tuple[str, Path]] = []
        for overlay in self._config.overlay_globs:
            base = (project_dir / overlay.base).resolve()
            for path in sorted(base.glob(overlay.pattern)):
                if not path.is_file():
                    continue
                key = to_posix(path.relative_to(base))
                if key in seen:
                    continue
                seen.add(key)
                files.append((key, path))
        return files

    def entry_file(self, entry: str) -> Path:
        """Absolute path of an entry point."""
        return self._config.source_root / entry

    async def assemble(self, entry: str) -> VirtualProject:
        """Snapshot an entry point and the shared overlay.

        Args:
            entry: Entry path relative to the source root

        Returns:
            VirtualProject keyed by virtual path

        Raises:
            ReadError: If the entry or any overlay file cannot be read
        """
        overlay = await asyncio.to_thread(self.glob_overlay_files)
        entry_key = to_posix(entry)
        overlay = [(key, path) for key, path in overlay if key != entry_key]

        entry_vf, *overlay_vfs = await asyncio.gather(
            _read_virtual_file(entry_key, self.entry_file(entry)),
            *(_read_virtual_file(key, path) for key, path in overlay),
        )
        project = VirtualProject(entry_vf, overlay_vfs)
        logger.debug(f"Assembled {entry_key} with {len(overlay_vfs)} overlay files")
        return project

    def _strip_source_prefix(self, pattern: str) -> str:
        pattern = to_posix(pattern)
        prefix = to_posix(self._config.source_dir) + "/"
        if pattern.startswith(prefix):
            return pattern[len(prefix) :]
        return pattern


async def _read_virtual_file(key: str, path: Path) -> VirtualFile:
    try:
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ReadError(path, f"not valid UTF-8 ({e.reason})") from e
    except OSError as e:
        raise ReadError(path, e.strerror or str(e)) from e
    return VirtualFile(key, text)
