"""Read-only stream that pulls its bytes from a callable.

The source is called with the number of bytes still wanted and returns
a chunk (any size), or ``None``/``False`` once it is exhausted.

Example:
    >>> chunks = iter([b"ab", b"cd"])
    >>> stream = PumpStream(lambda length: next(chunks, None))
    >>> stream.read(3)
    b'abc'
    >>> stream.get_contents()
    b'd'
"""

from __future__ import annotations

import os
from typing import Callable, Self

from loopstream.foundation.config import get_settings
from loopstream.foundation.errors import ErrorCode, JsonDict, StreamException


PumpSource = Callable[[int], "bytes | str | None | bool"]


class PumpStream:
    """Pull-driven, non-seekable ``SyncStream``.

    Args:
        source: Callable returning the next chunk, or None/False when done
        size: Known total size, if any
        metadata: Values returned by ``get_metadata``
    """

    __slots__ = ("_source", "_size", "_metadata", "_buffer", "_tell")

    def __init__(
        self,
        source: PumpSource,
        *,
        size: int | None = None,
        metadata: dict[str, object] | None = None,
    ) -> None:
        self._source: PumpSource | None = source
        self._size = size
        self._metadata: dict[str, object] = dict(metadata or {})
        self._buffer = bytearray()
        self._tell = 0

    def is_readable(self) -> bool:
        return True

    def is_writable(self) -> bool:
        return False

    def is_seekable(self) -> bool:
        return False

    def write(self, data: bytes) -> bool:
        return False

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> bool:
        return False

    def tell(self) -> int:
        """Bytes delivered so far."""
        return self._tell

    def eof(self) -> bool:
        return self._source is None and not self._buffer

    def get_size(self) -> int | None:
        return self._size

    def set_size(self, size: int | None) -> Self:
        self._size = size
        return self

    def read(self, length: int) -> bytes:
        if length > len(self._buffer):
            self._pump(length - len(self._buffer))
        data = bytes(self._buffer[:length])
        del self._buffer[:length]
        self._tell += len(data)
        return data

    def get_contents(self) -> bytes:
        chunk = get_settings().stream.pump_chunk_size
        parts = []
        while not self.eof():
            parts.append(self.read(chunk))
        return b"".join(parts)

    def get_metadata(self, key: str | None = None) -> JsonDict | object | None:
        if key is None:
            return dict(self._metadata)
        return self._metadata.get(key)

    def attach(self, handle: object) -> None:
        """Always raises; a pump is bound to its source for life."""
        raise StreamException.create("attach", "PumpStream has no handle to replace", ErrorCode.INVALID_RESOURCE)

    def detach(self) -> None:
        self._source = None
        self._buffer.clear()

    def close(self) -> None:
        self.detach()

    def __bytes__(self) -> bytes:
        return self.get_contents()

    def __str__(self) -> str:
        return self.get_contents().decode("utf-8", errors="replace")

    def _pump(self, length: int) -> None:
        while self._source is not None and length > 0:
            data = self._source(length)
            if data is None or data is False:
                self._source = None
                return
            if isinstance(data, str):
                data = data.encode()
            self._buffer += data
            length -= len(data)
