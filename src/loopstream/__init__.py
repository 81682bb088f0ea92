"""loopstream - synchronous streams that switch to event-driven I/O on demand.

Wraps an OS handle (file, pipe, socket) so it can be used both as a plain
seekable stream and as an event source driven by an asyncio loop.

Quick Start:
    >>> import asyncio
    >>> from loopstream import create_stream
    >>>
    >>> async def main():
    ...     stream = create_stream(b"hello", asyncio.get_running_loop())
    ...     stream.read(2)                      # b'he', still blocking
    ...     stream.on("data", lambda chunk, s: print(chunk))   # now event-driven
    ...     stream.on("close", lambda s: print("closed"))

Piping with backpressure:
    >>> source.pipe(destination)   # pauses source while destination is full
"""

from __future__ import annotations

__version__ = "0.1.0"

from .foundation.config import LoopstreamSettings, clear_settings_cache, get_settings
from .foundation.errors import ErrorCode, InvalidResourceError, StreamError, StreamException, classify_exception
from .io.streaming import (
    EventEmitter,
    EventLoopPort,
    EventStream,
    PumpStream,
    Stream,
    StreamEventKind,
    StreamMode,
    StreamOptions,
    SyncStream,
    WritableStream,
    WriteBuffer,
    create_stream,
    pipe,
)
from .runtime.observability import configure_logging, get_logger, log_context

__all__ = [
    "__version__",
    # Streams
    "Stream", "StreamOptions", "PumpStream", "WriteBuffer", "create_stream", "pipe",
    # Vocabulary & capabilities
    "StreamEventKind", "StreamMode", "SyncStream", "EventStream", "WritableStream",
    "EventEmitter", "EventLoopPort",
    # Errors
    "ErrorCode", "StreamError", "StreamException", "InvalidResourceError", "classify_exception",
    # Config & logging
    "LoopstreamSettings", "get_settings", "clear_settings_cache",
    "configure_logging", "get_logger", "log_context",
]
