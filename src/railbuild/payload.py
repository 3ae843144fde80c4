"""Payload injection.

Some scripts reference closed-source companion scripts through placeholder
tokens (e.g. REPPO_AEM7_ENGINESCRIPT). When a token appears in generated Lua,
it is replaced with a string literal holding the asset's raw bytes as decimal
escapes, so the script can load the embedded chunk at runtime:

    loadstring(REPPO_AEM7_ENGINESCRIPT)  ->  loadstring("\\27\\76\\117\\97...")

Assets are optional. An asset is read only when its token is present, so
builds without access to the payware directory still succeed for every
script that does not reference it.
"""

import asyncio
import logging
from pathlib import Path
from typing import Mapping

from .errors import ReadError

logger = logging.getLogger(__name__)


def embed_bytes(data: bytes) -> str:
    """Encode bytes as a double-quoted Lua string literal of decimal escapes.

    Examples:
        >>> embed_bytes(b"AB")
        '"\\\\65\\\\66"'
    """
    return '"' + "".join(f"\\{b}" for b in data) + '"'


class PayloadInjector:
    """Replaces placeholder tokens with embedded asset bytes.

    Loaded assets are memoized for the lifetime of the injector. The
    orchestrator creates one injector per build cycle, so assets changed or
    added between builds are picked up on the next cycle.

    Args:
        tokens: Placeholder token -> asset file path
    """

    def __init__(self, tokens: Mapping[str, Path]) -> None:
        self._tokens = dict(tokens)
        self._loads: dict[str, asyncio.Future[str]] = {}

    @property
    def loaded_tokens(self) -> list[str]:
        """Tokens whose assets have been read (or are being read)."""
        return list(self._loads)

    async def inject(self, text: str) -> str:
        """Replace every present token in text with its embedded asset.

        Args:
            text: Generated Lua text

        Returns:
            Text with tokens replaced, or the same text if no token occurs

        Raises:
            ReadError: If a referenced asset cannot be read
        """
        for token, asset_path in self._tokens.items():
            if token not in text:
                continue
            literal = await self._load(token, asset_path)
            text = text.replace(token, literal)
            logger.debug(f"Injected {token} from {asset_path}")
        return text

    async def _load(self, token: str, asset_path: Path) -> str:
        # Concurrent entries referencing the same token share one read
        future = self._loads.get(token)
        if future is None:
            future = asyncio.ensure_future(self._read_literal(asset_path))
            self._loads[token] = future
        return await asyncio.shield(future)

    @staticmethod
    async def _read_literal(asset_path: Path) -> str:
        try:
            data = await asyncio.to_thread(asset_path.read_bytes)
        except OSError as e:
            raise ReadError(asset_path, e.strerror or str(e)) from e
        return embed_bytes(data)
