"""Stream vocabulary and capability protocols.

A stream may offer two independent capabilities:

- ``SyncStream``: pull-based access (read/seek/tell/eof/get_contents)
- ``EventStream``: push-based delivery (data/drain/error/end/close events)

``Stream`` implements both; ``PumpStream`` is pull-only.
"""

from __future__ import annotations

import os
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .emitter import Listener


class StreamEventKind(StrEnum):
    """Events a stream emits."""
    DATA = "data"      # (chunk, stream)
    DRAIN = "drain"    # (stream) write backlog fell below the soft limit
    ERROR = "error"    # (exc, stream)
    END = "end"        # (stream)
    CLOSE = "close"    # (stream)
    PIPE = "pipe"      # (source) emitted on the destination of pipe()


class StreamMode(StrEnum):
    """I/O mode of a stream's handle. Only ever moves BLOCKING -> NON_BLOCKING."""
    BLOCKING = "blocking"
    NON_BLOCKING = "non_blocking"


@runtime_checkable
class SyncStream(Protocol):
    """Pull-side contract: synchronous, seekable byte access."""

    def is_readable(self) -> bool: ...
    def is_writable(self) -> bool: ...
    def is_seekable(self) -> bool: ...
    def read(self, length: int) -> bytes: ...
    def seek(self, offset: int, whence: int = os.SEEK_SET) -> bool: ...
    def tell(self) -> int | None: ...
    def eof(self) -> bool: ...
    def get_contents(self) -> bytes: ...
    def get_size(self) -> int | None: ...
    def get_metadata(self, key: str | None = None) -> object: ...
    def attach(self, handle: object) -> None: ...
    def detach(self) -> object: ...
    def close(self) -> None: ...


@runtime_checkable
class EventStream(Protocol):
    """Push-side contract: event delivery with backpressure."""

    def is_readable(self) -> bool: ...
    def is_writable(self) -> bool: ...
    def on(self, event: str, listener: Listener) -> None: ...
    def once(self, event: str, listener: Listener) -> None: ...
    def emit(self, event: str, *args: object) -> None: ...
    def remove_listener(self, event: str, listener: Listener) -> None: ...
    def remove_all_listeners(self, event: str | None = None) -> None: ...
    def pause(self) -> None: ...
    def resume(self) -> None: ...
    def pipe(self, dest: WritableStream, *, end: bool = True) -> WritableStream: ...
    def write(self, data: bytes) -> int | bool: ...
    def end(self, data: bytes | None = None) -> None: ...
    def close(self) -> None: ...


@runtime_checkable
class WritableStream(Protocol):
    """What pipe() needs from a destination."""

    def is_writable(self) -> bool: ...
    def write(self, data: bytes) -> int | bool: ...
    def end(self, data: bytes | None = None) -> None: ...
