"""Loop-driven streams.

Core:
    - Stream: sync stream over a handle that turns event-driven on demand
    - WriteBuffer: non-blocking write backlog with drain/error/close events
    - EventLoopPort: read/write readiness watches on an asyncio loop

Helpers:
    - PumpStream: read-only stream pulling from a callable
    - create_stream: normalize bytes/str/files/callables/iterables
    - pipe: forward one stream into another with backpressure
"""

from .buffer import WriteBuffer
from .emitter import EventEmitter, Listener
from .factory import create_stream
from .loop import EventLoopPort
from .metadata import handle_metadata
from .pipe import pipe
from .protocols import EventStream, StreamEventKind, StreamMode, SyncStream, WritableStream
from .pump import PumpStream
from .stream import Stream, StreamOptions

__all__ = [
    "EventEmitter",
    "EventLoopPort",
    "EventStream",
    "Listener",
    "PumpStream",
    "Stream",
    "StreamEventKind",
    "StreamMode",
    "StreamOptions",
    "SyncStream",
    "WritableStream",
    "WriteBuffer",
    "create_stream",
    "handle_metadata",
    "pipe",
]
