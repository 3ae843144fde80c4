"""Subprocess utilities for platform-safe process execution.

This module wraps asyncio subprocess creation so that compiler invocations
automatically get platform-specific flags preventing console window flashing
on Windows.
"""

import asyncio
import logging
import subprocess
import sys
from typing import Any, Optional

logger = logging.getLogger(__name__)


def get_subprocess_creation_flags() -> int:
    """Get platform-specific subprocess creation flags.

    Returns:
        - Windows: subprocess.CREATE_NO_WINDOW (prevents console window)
        - Other platforms: 0 (no special flags)
    """
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


async def safe_create_subprocess_exec(cmd: list[str], **kwargs: Any) -> asyncio.subprocess.Process:
    """Execute asyncio.create_subprocess_exec with platform-specific flags.

    Automatically applies:
    - CREATE_NO_WINDOW on Windows (prevents console window)
    - stdin=DEVNULL unless a stdin is given (prevents console input handle inheritance)

    Args:
        cmd: Command and arguments
        **kwargs: Additional arguments passed to asyncio.create_subprocess_exec

    Returns:
        The started asyncio Process

    Note:
        If 'creationflags' is explicitly provided in kwargs, it is OR'd with
        platform defaults to preserve custom flags.
    """
    default_flags = get_subprocess_creation_flags()

    if "creationflags" in kwargs:
        kwargs["creationflags"] = kwargs["creationflags"] | default_flags
    elif default_flags:
        kwargs["creationflags"] = default_flags

    if "stdin" not in kwargs:
        kwargs["stdin"] = asyncio.subprocess.DEVNULL

    logger.debug(f"Spawning: {' '.join(cmd[:4])}{' ...' if len(cmd) > 4 else ''}")
    return await asyncio.create_subprocess_exec(*cmd, **kwargs)


async def run_piped(
    cmd: list[str],
    input_data: Optional[bytes] = None,
    cwd: Optional[str] = None,
) -> tuple[int, bytes, bytes]:
    """Run a command to completion, feeding stdin and capturing stdout/stderr.

    stdin is written and closed concurrently with draining stdout and stderr
    (Process.communicate), so large outputs cannot fill the pipe buffer while
    input is still pending.

    Args:
        cmd: Command and arguments
        input_data: Bytes written to stdin, or None to attach stdin to DEVNULL
        cwd: Working directory for the child

    Returns:
        Tuple of (returncode, stdout, stderr)

    Raises:
        FileNotFoundError: If the executable does not exist
        PermissionError: If the executable cannot be run
    """
    stdin = asyncio.subprocess.PIPE if input_data is not None else asyncio.subprocess.DEVNULL
    process = await safe_create_subprocess_exec(
        cmd,
        stdin=stdin,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    stdout, stderr = await process.communicate(input=input_data)
    returncode = process.returncode if process.returncode is not None else await process.wait()
    return returncode, stdout, stderr
