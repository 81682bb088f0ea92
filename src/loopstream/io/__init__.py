"""I/O layer: loop-driven streams."""

from .streaming import PumpStream, Stream, WriteBuffer, create_stream, pipe

__all__ = ["PumpStream", "Stream", "WriteBuffer", "create_stream", "pipe"]
