"""Capability metadata derived from a live handle."""

from __future__ import annotations

import os
import stat
from typing import Literal

from loopstream.foundation.errors import JsonDict

from .loop import fileno

StreamType = Literal["file", "pipe", "socket", "char", "unknown"]


def stream_type(fd: int) -> StreamType:
    try:
        mode = os.fstat(fd).st_mode
    except OSError:
        return "unknown"
    if stat.S_ISREG(mode):
        return "file"
    if stat.S_ISFIFO(mode):
        return "pipe"
    if stat.S_ISSOCK(mode):
        return "socket"
    if stat.S_ISCHR(mode):
        return "char"
    return "unknown"


def is_seekable(handle: object) -> bool:
    """Whether ``handle`` supports seek; falls back to probing the fd."""
    if (probe := getattr(handle, "seekable", None)) is not None:
        try:
            return bool(probe())
        except (OSError, ValueError):
            return False
    try:
        os.lseek(fileno(handle), 0, os.SEEK_CUR)
    except OSError:
        return False
    return True


def handle_metadata(handle: object) -> JsonDict:
    """Describe ``handle``: uri, mode, seekable, blocked, stream_type, closed.

    A closed handle reports only ``closed``.
    """
    if getattr(handle, "closed", False):
        return {"closed": True}
    name = getattr(handle, "name", None)
    fd = fileno(handle)
    return {
        "uri": name if isinstance(name, str) else None,
        "mode": getattr(handle, "mode", None),
        "seekable": is_seekable(handle),
        "blocked": os.get_blocking(fd),
        "stream_type": stream_type(fd),
        "closed": False,
    }
