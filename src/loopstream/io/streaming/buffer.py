"""Non-blocking write backlog flushed from the event loop.

``WriteBuffer`` queues bytes and writes them whenever the loop reports the
handle write-ready. It reports through events:

- ``drain``: the backlog fell back below ``soft_limit`` after reaching it
- ``full-drain``: the backlog is empty
- ``error``: a write failed; the buffer stops writing for good
- ``close``: the buffer finished (after ``end()``) or was closed

The buffer never closes the handle; its owner does.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from loopstream.foundation.config import get_settings
from loopstream.foundation.errors import StreamException
from loopstream.runtime.observability import get_logger

from .emitter import EventEmitter
from .loop import fileno

if TYPE_CHECKING:
    from .loop import EventLoopPort

log = get_logger("loopstream.buffer")

FULL_DRAIN = "full-drain"


class WriteBuffer(EventEmitter):
    """Backlog of outgoing bytes bound 1:1 to a handle.

    Args:
        handle: Object with ``fileno()`` (or a bare fd) to write to
        port: Loop port used for write-readiness watches
        soft_limit: Backlog size at which ``write()`` starts returning False
    """

    __slots__ = ("handle", "port", "soft_limit", "listening", "_writable", "_closed", "_data")

    def __init__(self, handle: object, port: EventLoopPort, *, soft_limit: int | None = None) -> None:
        super().__init__()
        self.handle = handle
        self.port = port
        self.soft_limit = soft_limit or get_settings().stream.write_soft_limit
        self.listening = False
        self._writable = True
        self._closed = False
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def is_writable(self) -> bool:
        return self._writable

    def write(self, data: bytes) -> int | bool:
        """Queue ``data``.

        Returns:
            Bytes accepted (True for an empty write) while the backlog is
            below the soft limit; False once it is full. Data is queued
            either way unless the buffer is no longer writable.
        """
        if not self._writable:
            return False
        self._data += data
        if not self.listening and self._data:
            self.listening = True
            self.port.register_write_watch(self.handle, self.handle_write)
        if len(self._data) >= self.soft_limit:
            return False
        return len(data) or True

    def end(self, data: bytes | None = None) -> None:
        """Queue trailing ``data`` and close once everything is flushed."""
        if data:
            self.write(data)
        self._writable = False
        if self.listening:
            self.once(FULL_DRAIN, lambda _buffer: self.close())
        else:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writable = False
        self._stop()
        self._data.clear()
        self.emit("close", self)

    def handle_write(self, handle: object) -> None:
        """Write-readiness callback: flush as much backlog as the fd takes."""
        backlog = len(self._data)
        try:
            sent = os.write(fileno(handle), self._data)
        except BlockingIOError:
            return
        except (OSError, ValueError) as exc:
            self._fail(exc)
            return

        del self._data[:sent]
        if backlog >= self.soft_limit > len(self._data):
            self.emit("drain", self)
        if not self._data:
            self._stop()
            self.emit(FULL_DRAIN, self)

    def _stop(self) -> None:
        if self.listening:
            self.listening = False
            self.port.unregister_write_watch(self.handle)

    def _fail(self, exc: BaseException) -> None:
        error = StreamException.from_exc("write", exc, "Unable to write to stream")
        log.warning("write failed", code=error.code, error=str(exc))
        self._writable = False
        self._stop()
        self._data.clear()
        self.emit("error", error, self)
