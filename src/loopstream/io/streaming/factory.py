"""Normalize arbitrary resources into streams.

    >>> create_stream(b"hello", loop)           # Stream over a temp file
    >>> create_stream(open("data.bin", "rb"), loop)
    >>> create_stream(lambda n: None)           # PumpStream, no loop needed
    >>> create_stream(iter([b"a", b"b"]))        # PumpStream over an iterator
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from loopstream.foundation.errors import InvalidResourceError

from .pump import PumpStream
from .stream import Stream

if TYPE_CHECKING:
    import asyncio


def create_stream(
    resource: object = b"",
    loop: asyncio.AbstractEventLoop | None = None,
    *,
    size: int | None = None,
    metadata: dict[str, object] | None = None,
) -> Stream | PumpStream:
    """Wrap ``resource`` in the matching stream type.

    Args:
        resource: str/bytes (spooled to a temp file), an existing stream,
            a file-like object with ``fileno()``, a callable source, or an
            iterable of chunks
        loop: Event loop; required for anything backed by a handle
        size: Known size, forwarded to the stream
        metadata: Custom metadata, forwarded to the stream

    Raises:
        InvalidResourceError: unsupported resource, or handle without a loop
    """
    if isinstance(resource, (Stream, PumpStream)):
        return resource

    if isinstance(resource, (str, bytes, bytearray, memoryview)):
        handle = tempfile.TemporaryFile("w+b", buffering=0)
        if resource:
            handle.write(resource.encode() if isinstance(resource, str) else bytes(resource))
            handle.seek(0)
        return _wrap(handle, loop, size=size, metadata=metadata, owned=True)

    if callable(getattr(resource, "fileno", None)):
        return _wrap(resource, loop, size=size, metadata=metadata)

    if callable(resource):
        return PumpStream(resource, size=size, metadata=metadata)

    if isinstance(resource, Iterable):
        iterator: Iterator[object] = iter(resource)
        return PumpStream(lambda _length: next(iterator, None), size=size, metadata=metadata)  # type: ignore[arg-type, return-value]

    raise InvalidResourceError.for_resource(resource, "Invalid resource type")


def _wrap(
    handle: object,
    loop: asyncio.AbstractEventLoop | None,
    *,
    size: int | None,
    metadata: dict[str, object] | None,
    owned: bool = False,
) -> Stream:
    if loop is None:
        if owned:
            handle.close()  # type: ignore[attr-defined]
        raise InvalidResourceError.for_resource(handle, "A handle-backed stream needs an event loop")
    return Stream(handle, loop, size=size, metadata=metadata)
