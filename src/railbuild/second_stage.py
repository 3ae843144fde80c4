"""Second-stage compiler: Lua text -> bytecode via an external process.

The compiler reads source on stdin and writes the compiled chunk to stdout
(e.g. "luac -o - -"). Exit code 0 means success.
"""

import logging
from typing import Optional, Sequence

from .errors import ToolchainError
from .subprocess_utils import run_piped

logger = logging.getLogger(__name__)


class SecondStageCompiler:
    """Pipes generated Lua text through an external binary compiler.

    Args:
        command: Compiler command line. Must read stdin and write stdout.
        cwd: Working directory for the compiler process.
    """

    def __init__(self, command: Sequence[str], cwd: Optional[str] = None) -> None:
        if not command:
            raise ValueError("Second-stage compiler command must not be empty")
        self._command = list(command)
        self._cwd = cwd

    async def compile(self, text: str) -> bytes:
        """Compile Lua text into bytes.

        Args:
            text: Lua source text

        Returns:
            Everything the compiler wrote to stdout

        Raises:
            ToolchainError: If the compiler cannot start or exits nonzero
        """
        source = text.encode("utf-8")
        try:
            returncode, stdout, stderr = await run_piped(self._command, input_data=source, cwd=self._cwd)
        except OSError as e:
            raise ToolchainError(self._command, None, str(e)) from e

        if returncode != 0:
            raise ToolchainError(self._command, returncode, stderr.decode("utf-8", errors="replace"))

        logger.debug(f"{self._command[0]}: {len(source)} bytes in, {len(stdout)} bytes out")
        return stdout
