"""Seekable stream over an OS handle with on-demand event delivery.

``Stream`` starts out as a plain synchronous stream: ``read``, ``seek``,
``tell``, ``get_contents`` act directly on the handle and may block.
The first listener subscription or the first ``write()`` activates it:
the descriptor is switched to non-blocking mode and a read watch is
registered on the event loop, after which data arrives as ``data``
events and writes go through a ``WriteBuffer`` with backpressure.

Lifecycle:
    open --end()--> ending --buffer flushed--> closed
    open --close()/error/EOF/GC--------------> closed

``close()`` emits ``end`` then ``close`` exactly once, drops every
listener, and releases the handle.

Example:
    >>> loop = asyncio.get_running_loop()
    >>> stream = Stream(sock.makefile("rwb", buffering=0), loop)
    >>> stream.on("data", lambda chunk, s: print(chunk))
    >>> stream.write(b"ping")
"""

from __future__ import annotations

import os
import stat
from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

from loopstream.foundation.config import get_settings
from loopstream.foundation.errors import ErrorCode, InvalidResourceError, JsonDict, StreamException
from loopstream.runtime.observability import get_logger

from .buffer import WriteBuffer
from .emitter import EventEmitter
from .loop import EventLoopPort, fileno
from .metadata import handle_metadata, is_seekable
from .pipe import pipe
from .protocols import StreamEventKind, StreamMode

if TYPE_CHECKING:
    import asyncio
    from types import TracebackType

    from .emitter import Listener
    from .protocols import WritableStream

log = get_logger("loopstream.stream")


class StreamOptions(BaseModel):
    """Construction options.

    Attributes:
        size: Known byte length when the handle cannot report one
        metadata: Extra metadata returned by ``get_metadata``; wins over
            handle-derived keys
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    size: NonNegativeInt | None = None
    metadata: dict[str, object] = Field(default_factory=dict)


def _require_handle(handle: object) -> None:
    if getattr(handle, "closed", False) or not callable(getattr(handle, "fileno", None)):
        raise InvalidResourceError.for_resource(handle, "Stream requires an open handle with fileno()")
    try:
        os.fstat(handle.fileno())  # type: ignore[attr-defined]
    except (OSError, ValueError) as exc:
        raise InvalidResourceError.for_resource(handle, f"Handle has no usable file descriptor: {exc}") from exc


def _as_bytes(data: bytes | bytearray | memoryview | str) -> bytes:
    return data.encode() if isinstance(data, str) else bytes(data)


class Stream(EventEmitter):
    """Readable/writable stream adapter bound to one handle and one loop.

    Args:
        handle: Open file object exposing ``fileno()`` (file, pipe, socket file)
        loop: Event loop driving reads and writes once activated
        size: Known size in bytes, see ``StreamOptions``
        metadata: Custom metadata, see ``StreamOptions``
        buffer_size: Max bytes per ``data`` event (default from settings)
        soft_limit: Write backlog that triggers backpressure (default from settings)

    Raises:
        InvalidResourceError: ``handle`` is closed or has no file descriptor
    """

    def __init__(
        self,
        handle: object,
        loop: asyncio.AbstractEventLoop,
        *,
        size: int | None = None,
        metadata: dict[str, object] | None = None,
        buffer_size: int | None = None,
        soft_limit: int | None = None,
    ) -> None:
        _require_handle(handle)
        options = StreamOptions(size=size, metadata=metadata or {})
        super().__init__()

        self.loop = loop
        self.buffer_size = buffer_size or get_settings().stream.read_chunk_size
        self._port = EventLoopPort(loop)
        self._handle: object | None = handle
        self._size: int | None = options.size
        self._custom_metadata: dict[str, object] = dict(options.metadata)
        self._mode = StreamMode.BLOCKING
        self._readable = True
        self._writable = True
        self._closing = False
        self._soft_limit = soft_limit
        self._buffer: WriteBuffer | None = None

        self.attach(handle)

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def mode(self) -> StreamMode:
        return self._mode

    @property
    def closing(self) -> bool:
        """True between ``end()`` and the write buffer finishing."""
        return self._closing

    @property
    def handle(self) -> object | None:
        return self._handle

    @property
    def buffer(self) -> WriteBuffer:
        if self._buffer is None:
            raise StreamException.create("buffer", "Stream is not bound to a handle", ErrorCode.INVALID_RESOURCE)
        return self._buffer

    def is_readable(self) -> bool:
        return self._readable

    def is_writable(self) -> bool:
        return self._writable

    def is_seekable(self) -> bool:
        return self._seekable

    # ─────────────────────────────────────────────────────────────────────────
    # Mode control
    # ─────────────────────────────────────────────────────────────────────────

    def activate(self) -> None:
        """Switch to non-blocking, event-driven I/O. Idempotent."""
        if self._mode is StreamMode.NON_BLOCKING or not self._live():
            return
        handle = self._handle
        if self._handle_writable and (flush := getattr(handle, "flush", None)) is not None:
            flush()
        if self._seekable:
            # Realign the fd with the logical position of any read-ahead buffer
            os.lseek(fileno(handle), handle.tell(), os.SEEK_SET)  # type: ignore[union-attr]
        os.set_blocking(fileno(handle), False)
        self._mode = StreamMode.NON_BLOCKING
        self._log.debug("stream activated")
        self.resume()

    def on(self, event: str, listener: Listener) -> None:
        self.activate()
        super().on(event, listener)

    def once(self, event: str, listener: Listener) -> None:
        self.activate()
        super().once(event, listener)

    # ─────────────────────────────────────────────────────────────────────────
    # Read pump
    # ─────────────────────────────────────────────────────────────────────────

    def pause(self) -> None:
        """Stop watching the handle for readable data."""
        if self._handle is not None:
            self._port.unregister_watch(self._handle)

    def resume(self) -> None:
        """Watch the handle for readable data while the stream is readable."""
        if self._readable and self._handle_readable and self._live():
            self._port.register_read_watch(self._handle, self.handle_data)

    def handle_data(self, handle: object) -> None:
        """Read-readiness callback: emit at most one ``buffer_size`` chunk."""
        try:
            data = os.read(fileno(handle), self.buffer_size)
        except BlockingIOError:
            return
        except ValueError:
            # handle was closed underneath us
            self.end()
            return
        except OSError as exc:
            self._fail(StreamException.from_exc("read", exc, "Unable to read from stream"))
            return

        if data:
            self.emit(StreamEventKind.DATA, data, self)
        if not data or self._at_eof(handle):
            self._eof_seen = True
            self.end()

    # ─────────────────────────────────────────────────────────────────────────
    # Write path / termination
    # ─────────────────────────────────────────────────────────────────────────

    def write(self, data: bytes | bytearray | memoryview | str) -> int | bool:
        """Queue ``data`` for writing.

        Returns:
            Bytes accepted, or False when the backlog is full (wait for
            ``drain``) or the stream is no longer writable
        """
        if not self._writable:
            return False
        self.activate()
        return self.buffer.write(_as_bytes(data))

    def end(self, data: bytes | bytearray | memoryview | str | None = None) -> None:
        """Stop reading and writing; close once pending writes are flushed."""
        if not self._writable:
            return
        if data:
            self.activate()
        self._closing = True
        self._readable = False
        self._writable = False
        self.pause()
        self._log.debug("stream ending", pending=len(self.buffer))

        self.buffer.once("close", lambda _buffer: self.close())
        self.buffer.end(_as_bytes(data) if data else None)

    def close(self) -> None:
        """Emit ``end`` and ``close``, drop listeners, release the handle."""
        if not self._writable and not self._closing:
            return
        self._closing = False
        self._readable = False
        self._writable = False

        self.emit(StreamEventKind.END, self)
        self.emit(StreamEventKind.CLOSE, self)
        if self._handle is not None:
            self._port.unregister_all(self._handle)
        self.buffer.remove_all_listeners()
        self.buffer.close()
        self.remove_all_listeners()

        self.handle_close()
        self._log.debug("stream closed")

    def handle_close(self) -> None:
        if self._handle is not None and not getattr(self._handle, "closed", False):
            self._handle.close()  # type: ignore[attr-defined]

    def pipe(self, dest: WritableStream, *, end: bool = True) -> WritableStream:
        """Forward this stream's data into ``dest``; returns ``dest``."""
        pipe(self, dest, end=end)
        return dest

    def __del__(self) -> None:
        if getattr(self, "_buffer", None) is not None:
            self.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Handle binding
    # ─────────────────────────────────────────────────────────────────────────

    def attach(self, handle: object) -> None:
        """Bind to ``handle``, recomputing seekability and uri.

        Cached size and position knowledge is not reset; call ``set_size``
        if the new handle differs in length. A previously bound handle is
        left open for the caller.
        """
        _require_handle(handle)
        previous, self._handle = self._handle, handle
        if previous is not None and previous is not handle:
            self._port.unregister_all(previous)

        self._seekable = is_seekable(handle)
        self._uri = handle_metadata(handle).get("uri")
        self._handle_readable = _probe(handle, "readable")
        self._handle_writable = _probe(handle, "writable")
        self._eof_seen = False
        self._log = log.bind(fd=fileno(handle))

        if self._buffer is None or self._buffer.handle is not handle:
            self._bind_buffer(handle)
        if self._mode is StreamMode.NON_BLOCKING:
            os.set_blocking(fileno(handle), False)
            self.resume()

    def detach(self) -> object | None:
        """Hand the handle back to the caller; the stream becomes unusable."""
        handle = self._handle
        if handle is not None:
            self._port.unregister_all(handle)
        if self._buffer is not None:
            self._buffer.remove_all_listeners()
            self._buffer.close()
        self._handle = self._size = self._uri = None
        self._readable = self._writable = self._seekable = False
        self._closing = False
        self._log.debug("stream detached")
        return handle

    def _bind_buffer(self, handle: object) -> None:
        if self._buffer is not None:
            self._buffer.remove_all_listeners()
            self._buffer.close()
        self._buffer = WriteBuffer(handle, self._port, soft_limit=self._soft_limit)
        self._buffer.on("error", lambda error, _buffer: self._fail(error))
        self._buffer.on("drain", lambda _buffer: self.emit(StreamEventKind.DRAIN, self))

    def _fail(self, error: StreamException) -> None:
        self._log.warning("stream failed", operation=error.error.operation, code=error.code)
        self.emit(StreamEventKind.ERROR, error, self)
        self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Synchronous accessors
    # ─────────────────────────────────────────────────────────────────────────

    def set_size(self, size: int | None) -> Self:
        self._size = size
        return self

    def get_size(self) -> int | None:
        """Size in bytes if known; queried once from fstat while blocking."""
        if self._size is not None:
            return self._size
        if not self._live() or self._mode is not StreamMode.BLOCKING:
            return None
        try:
            st = os.fstat(fileno(self._handle))
        except OSError:
            return None
        if not stat.S_ISREG(st.st_mode):
            return None
        self._size = st.st_size
        return self._size

    def tell(self) -> int | None:
        """Current position, or None when detached or not positionable."""
        if not self._live():
            return None
        try:
            if self._mode is StreamMode.NON_BLOCKING:
                return os.lseek(fileno(self._handle), 0, os.SEEK_CUR)
            return self._handle.tell()  # type: ignore[union-attr]
        except (OSError, ValueError):
            return None

    def eof(self) -> bool:
        if not self._live() or self._eof_seen:
            return True
        return self._at_eof(self._handle)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> bool:
        """Reposition like ``os.lseek``; False on unseekable handles."""
        if not self._seekable or not self._live():
            return False
        try:
            if self._mode is StreamMode.NON_BLOCKING:
                os.lseek(fileno(self._handle), offset, whence)
            else:
                self._handle.seek(offset, whence)  # type: ignore[union-attr]
        except (OSError, ValueError):
            return False
        self._eof_seen = False
        return True

    def read(self, length: int) -> bytes:
        """Read up to ``length`` bytes; only while readable and blocking."""
        if not self._readable or self._mode is not StreamMode.BLOCKING or not self._live():
            return b""
        data = self._handle.read(length)  # type: ignore[union-attr]
        if data is None:
            return b""
        if length and not data:
            self._eof_seen = True
        return data

    def get_contents(self) -> bytes:
        """Remaining bytes up to EOF; only while blocking."""
        if not self._live() or self._mode is not StreamMode.BLOCKING:
            return b""
        data = self._handle.read()  # type: ignore[union-attr]
        self._eof_seen = True
        return data or b""

    def get_metadata(self, key: str | None = None) -> JsonDict | object | None:
        """Handle metadata merged under custom metadata, or one key of it."""
        if self._handle is None:
            return None if key else {}
        if key is None:
            return {**handle_metadata(self._handle), **self._custom_metadata}
        if key in self._custom_metadata:
            return self._custom_metadata[key]
        return handle_metadata(self._handle).get(key)

    def __bytes__(self) -> bytes:
        """Whole stream from the start; empty once event-driven."""
        if not self._live() or self._mode is not StreamMode.BLOCKING:
            return b""
        self.seek(0)
        return self.get_contents()

    def __str__(self) -> str:
        return bytes(self).decode("utf-8", errors="replace")

    def __repr__(self) -> str:
        return (f"<Stream fd={self._log.context.get('fd')} mode={self._mode} "
                f"readable={self._readable} writable={self._writable}>")

    # ─────────────────────────────────────────────────────────────────────────

    def _live(self) -> bool:
        return self._handle is not None and not getattr(self._handle, "closed", False)

    def _at_eof(self, handle: object) -> bool:
        if getattr(handle, "closed", False):
            return True
        if not self._seekable:
            return False
        try:
            fd = fileno(handle)
            st = os.fstat(fd)
            position = os.lseek(fd, 0, os.SEEK_CUR) if self._mode is StreamMode.NON_BLOCKING else handle.tell()  # type: ignore[attr-defined]
        except (OSError, ValueError):
            return True
        return stat.S_ISREG(st.st_mode) and position >= st.st_size


def _probe(handle: object, capability: str) -> bool:
    """Ask an io object whether it can read/write; assume yes when it can't say."""
    if (check := getattr(handle, capability, None)) is None:
        return True
    try:
        return bool(check())
    except (OSError, ValueError):
        return False
