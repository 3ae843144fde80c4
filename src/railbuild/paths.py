"""Canonical path normalization for lookup tables.

Copy rules and watch keys are compared as strings. Every key goes through
normalize_key() before insertion or lookup so that the tables behave the same
on Windows and POSIX hosts.
"""

import posixpath
from pathlib import PurePath
from typing import Union

PathLike = Union[str, PurePath]


def to_posix(path: PathLike) -> str:
    """Convert a path to forward-slash form and collapse redundant segments.

    Args:
        path: Relative or absolute path, with either separator style.

    Returns:
        Normalized path using "/" separators (case preserved).
    """
    text = str(path).replace("\\", "/")
    normalized = posixpath.normpath(text)
    if normalized == ".":
        return ""
    return normalized


def normalize_key(path: PathLike) -> str:
    """Normalize a path into a separator- and case-insensitive table key.

    Examples:
        >>> normalize_key("Assets\\\\RSC\\\\Engine.out")
        'assets/rsc/engine.out'
        >>> normalize_key("./Assets/RSC/../RSC/Engine.out")
        'assets/rsc/engine.out'
    """
    return to_posix(path).casefold()
