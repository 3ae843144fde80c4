"""Secondary artifact placement.

A few scripts are shared between vehicles that live in different asset
folders. The copy table lists, for such a primary output, every extra path
the same artifact must be placed at. Most outputs have no entry.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from .errors import CopyError
from .paths import PathLike, normalize_key, to_posix

logger = logging.getLogger(__name__)


class CopyTable:
    """Immutable mapping from a normalized primary output path to its extra destinations.

    Keys are normalized with normalize_key() on insertion and on lookup, so
    lookups are independent of separator style and letter case. Destination
    paths keep their case and are returned in table order.

    Args:
        rules: (primary path, destination paths) pairs, relative to the output root

    Raises:
        ValueError: If two rules normalize to the same primary path
    """

    def __init__(self, rules: Iterable[tuple[str, Sequence[str]]]) -> None:
        table: dict[str, tuple[str, ...]] = {}
        for source, destinations in rules:
            key = normalize_key(source)
            if key in table:
                raise ValueError(f"Duplicate copy rule for {source}")
            table[key] = tuple(to_posix(d) for d in destinations)
        self._table: Mapping[str, tuple[str, ...]] = MappingProxyType(table)

    def destinations_for(self, relative_path: PathLike) -> tuple[str, ...]:
        """Return the destinations for a primary output, or () if it has none."""
        return self._table.get(normalize_key(relative_path), ())


class OutputDistributor:
    """Copies finished artifacts to the destinations listed in a CopyTable.

    Args:
        output_root: Directory primary outputs and copies are relative to
        table: Copy rules
    """

    def __init__(self, output_root: Path, table: CopyTable) -> None:
        self._output_root = output_root
        self._table = table

    async def distribute(self, primary_relative_path: PathLike) -> list[Path]:
        """Copy a primary artifact to each destination its rule lists.

        Args:
            primary_relative_path: Primary output path relative to the output root

        Returns:
            Destination paths written, in table order (empty when no rule matches)

        Raises:
            CopyError: If a directory cannot be created or a copy fails
        """
        destinations = self._table.destinations_for(primary_relative_path)
        if not destinations:
            return []

        source = self._output_root / to_posix(primary_relative_path)
        written: list[Path] = []
        for relative in destinations:
            destination = self._output_root / relative
            await asyncio.to_thread(_copy_file, source, destination)
            logger.debug(f"Copied {source} -> {destination}")
            written.append(destination)
        return written


def _copy_file(source: Path, destination: Path) -> None:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)
    except OSError as e:
        raise CopyError(source, destination, e.strerror or str(e)) from e
