"""Tests for the Stream adapter.

Validates:
- Blocking/non-blocking mode switching
- Read pump event ordering and end-of-stream handling
- Write path backpressure and error escalation
- End/close sequencing and idempotency
- Synchronous accessors, attach/detach, metadata
"""

from __future__ import annotations

import asyncio
import io
import os
import socket
import struct

import pytest

from loopstream import (
    ErrorCode,
    EventStream,
    InvalidResourceError,
    Stream,
    StreamException,
    StreamMode,
    SyncStream,
    create_stream,
)

from .helpers import CountingFile, next_event


def record(stream: Stream, *events: str) -> list[tuple[object, ...]]:
    """Subscribe to ``events`` and collect (name, *args) tuples."""
    seen: list[tuple[object, ...]] = []
    for name in events:
        stream.on(name, lambda *args, _name=name: seen.append((_name, *args)))
    return seen


# ═════════════════════════════════════════════════════════════════════════════
# Construction
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_rejects_closed_handle(counting_file: CountingFile) -> None:
    counting_file.close()
    with pytest.raises(InvalidResourceError):
        Stream(counting_file, asyncio.get_running_loop())


@pytest.mark.asyncio
async def test_rejects_in_memory_buffer() -> None:
    with pytest.raises(InvalidResourceError) as exc_info:
        Stream(io.BytesIO(b"abc"), asyncio.get_running_loop())
    assert exc_info.value.code == ErrorCode.INVALID_RESOURCE
    assert isinstance(exc_info.value, ValueError)


@pytest.mark.asyncio
async def test_rejects_negative_size(counting_file: CountingFile) -> None:
    with pytest.raises(ValueError):
        Stream(counting_file, asyncio.get_running_loop(), size=-1)


@pytest.mark.asyncio
async def test_implements_both_capabilities(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    assert isinstance(stream, SyncStream)
    assert isinstance(stream, EventStream)
    stream.close()


# ═════════════════════════════════════════════════════════════════════════════
# Mode Controller
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_passive_reader_stays_blocking(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())

    assert stream.read(5) == b"hello"
    assert stream.get_contents() == b" world"
    assert stream.mode is StreamMode.BLOCKING
    assert os.get_blocking(counting_file.fileno())
    stream.close()


@pytest.mark.asyncio
async def test_subscription_disables_sync_reads(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    stream.on("close", lambda s: None)

    assert stream.mode is StreamMode.NON_BLOCKING
    assert stream.read(5) == b""
    assert stream.get_contents() == b""
    assert bytes(stream) == b""
    assert stream.get_size() is None
    stream.close()


@pytest.mark.asyncio
async def test_first_write_activates(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    _, writer = pipe_pair
    stream = Stream(writer, asyncio.get_running_loop())
    assert stream.mode is StreamMode.BLOCKING

    stream.write(b"x")

    assert stream.mode is StreamMode.NON_BLOCKING
    assert not os.get_blocking(writer.fileno())
    stream.close()


@pytest.mark.asyncio
async def test_activate_is_idempotent(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, _ = pipe_pair
    stream = Stream(reader, asyncio.get_running_loop())
    stream.activate()
    stream.activate()
    stream.on("data", lambda chunk, s: None)
    assert stream.mode is StreamMode.NON_BLOCKING
    stream.close()


@pytest.mark.asyncio
async def test_once_activates(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, _ = pipe_pair
    stream = Stream(reader, asyncio.get_running_loop())

    stream.once("end", lambda s: None)

    assert stream.mode is StreamMode.NON_BLOCKING
    assert not os.get_blocking(reader.fileno())
    assert stream.read(1) == b""
    stream.close()


@pytest.mark.asyncio
async def test_buffer_requires_bound_handle() -> None:
    stream = Stream.__new__(Stream)
    stream._buffer = None

    with pytest.raises(StreamException) as info:
        stream.buffer
    assert info.value.code == ErrorCode.INVALID_RESOURCE


# ═════════════════════════════════════════════════════════════════════════════
# Read Pump
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_pipe_data_then_end_then_close(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, writer = pipe_pair
    writer.write(b"AB")
    writer.close()
    stream = Stream(reader, asyncio.get_running_loop())

    seen = record(stream, "data", "end")
    await next_event(stream, "close")

    assert seen == [("data", b"AB", stream), ("end", stream)]
    assert reader.closed
    assert not stream.is_readable() and not stream.is_writable()


@pytest.mark.asyncio
async def test_regular_file_data_then_end_then_close() -> None:
    stream = create_stream(b"AB", asyncio.get_running_loop())

    seen = record(stream, "data", "end", "close")
    await asyncio.sleep(0.05)

    assert seen == [("data", b"AB", stream), ("end", stream), ("close", stream)]


@pytest.mark.asyncio
async def test_chunks_bounded_by_buffer_size() -> None:
    stream = create_stream(b"x" * 10, asyncio.get_running_loop())
    stream.buffer_size = 4

    chunks: list[bytes] = []
    stream.on("data", lambda chunk, s: chunks.append(chunk))
    await next_event(stream, "close")

    assert chunks == [b"xxxx", b"xxxx", b"xx"]


@pytest.mark.asyncio
async def test_pause_and_resume(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, writer = pipe_pair
    stream = Stream(reader, asyncio.get_running_loop())
    chunks: list[bytes] = []
    stream.on("data", lambda chunk, s: chunks.append(chunk))

    stream.pause()
    writer.write(b"held")
    await asyncio.sleep(0.05)
    assert chunks == []

    stream.resume()
    await next_event(stream, "data")
    assert chunks == [b"held"]
    stream.close()


@pytest.mark.asyncio
async def test_no_data_after_close(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, writer = pipe_pair
    stream = Stream(reader, asyncio.get_running_loop())
    chunks: list[bytes] = []
    stream.on("data", lambda chunk, s: chunks.append(chunk))
    writer.write(b"pending")

    stream.close()
    await asyncio.sleep(0.05)

    assert chunks == []


# ═════════════════════════════════════════════════════════════════════════════
# Write Path
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_write_reaches_peer(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, writer = pipe_pair
    stream = Stream(writer, asyncio.get_running_loop(), soft_limit=64)

    assert stream.write(b"abc") == 3
    await next_event(stream.buffer, "full-drain")

    assert reader.read(3) == b"abc"
    stream.close()


@pytest.mark.asyncio
async def test_backpressure_then_drain(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, writer = pipe_pair
    stream = Stream(writer, asyncio.get_running_loop(), soft_limit=4)

    assert stream.write(b"abcdef") is False
    (drained,) = await next_event(stream, "drain")

    assert drained is stream
    assert reader.read(6) == b"abcdef"
    stream.close()


@pytest.mark.asyncio
async def test_write_after_end_is_rejected(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    _, writer = pipe_pair
    stream = Stream(writer, asyncio.get_running_loop())
    stream.end()

    events = record(stream, "data", "drain", "error", "end", "close")
    assert stream.write(b"x") is False
    await asyncio.sleep(0.01)
    assert events == []


@pytest.mark.asyncio
async def test_write_error_emits_error_then_closes(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, writer = pipe_pair
    reader.close()
    stream = Stream(writer, asyncio.get_running_loop())
    seen = record(stream, "error", "end")

    stream.write(b"nobody listening")
    await next_event(stream, "close")

    assert [name for name, *_ in seen] == ["error", "end"]
    error = seen[0][1]
    assert isinstance(error, StreamException)
    assert error.code == ErrorCode.BROKEN_PIPE
    assert isinstance(error.__cause__, BrokenPipeError)
    assert writer.closed


@pytest.mark.asyncio
async def test_read_error_emits_error_then_closes() -> None:
    with socket.create_server(("127.0.0.1", 0)) as server:
        ours = socket.create_connection(server.getsockname())
        peer, _ = server.accept()
    # Abortive close: the peer sends RST instead of FIN
    peer.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
    peer.close()
    try:
        stream = Stream(ours.makefile("rb", buffering=0), asyncio.get_running_loop())
        seen = record(stream, "data", "error", "end")

        await next_event(stream, "close")

        assert [name for name, *_ in seen] == ["error", "end"]
        error = seen[0][1]
        assert isinstance(error, StreamException)
        assert error.error.operation == "read"
        assert error.code == ErrorCode.CONNECTION_RESET
        assert isinstance(error.__cause__, ConnectionResetError)
        assert not stream.is_readable()
    finally:
        ours.close()


# ═════════════════════════════════════════════════════════════════════════════
# End / Close
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_double_close_emits_once_and_releases_once(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    seen = record(stream, "end", "close")

    stream.close()
    stream.close()

    assert seen == [("end", stream), ("close", stream)]
    assert counting_file.closes == 1
    assert not stream.closing


@pytest.mark.asyncio
async def test_end_flushes_trailing_data_before_close(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, writer = pipe_pair
    stream = Stream(writer, asyncio.get_running_loop())

    stream.write(b"head-")
    stream.end(b"tail")
    assert stream.closing
    assert not stream.is_writable() and not stream.is_readable()

    await next_event(stream, "close")

    assert not stream.closing
    assert reader.read(64) == b"head-tail"
    assert writer.closed


@pytest.mark.asyncio
async def test_end_on_idle_stream_closes_immediately(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    seen = record(stream, "end", "close")

    stream.end()

    assert seen == [("end", stream), ("close", stream)]
    assert counting_file.closed


@pytest.mark.asyncio
async def test_close_drops_listeners(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    stream.on("data", lambda chunk, s: None)

    stream.close()

    assert stream.listeners("data") == []
    assert stream.buffer.listeners("error") == []


@pytest.mark.asyncio
async def test_context_manager_closes(counting_file: CountingFile) -> None:
    with Stream(counting_file, asyncio.get_running_loop()) as stream:
        assert stream.read(5) == b"hello"
    assert counting_file.closes == 1


@pytest.mark.asyncio
async def test_garbage_collection_releases_handle(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    stream.__del__()
    assert counting_file.closed
    del stream
    assert counting_file.closes == 1


# ═════════════════════════════════════════════════════════════════════════════
# Synchronous Accessors
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_seek_tell_eof(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())

    assert stream.is_seekable()
    assert stream.seek(6)
    assert stream.tell() == 6
    assert stream.read(5) == b"world"
    assert stream.eof()
    assert stream.seek(-5, os.SEEK_END)
    assert not stream.eof()
    assert stream.seek(-2, os.SEEK_CUR)
    assert stream.read(2) == b"o "
    stream.close()


@pytest.mark.asyncio
async def test_seek_fails_on_unseekable(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, _ = pipe_pair
    stream = Stream(reader, asyncio.get_running_loop())

    assert not stream.is_seekable()
    for offset, whence in [(0, os.SEEK_SET), (3, os.SEEK_CUR), (-1, os.SEEK_END)]:
        assert stream.seek(offset, whence) is False
    assert stream.tell() is None
    stream.close()


@pytest.mark.asyncio
async def test_get_size_queries_once(counting_file: CountingFile, monkeypatch: pytest.MonkeyPatch) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    calls = 0
    real_fstat = os.fstat

    def counting_fstat(fd: int) -> os.stat_result:
        nonlocal calls
        calls += 1
        return real_fstat(fd)

    monkeypatch.setattr(os, "fstat", counting_fstat)

    assert stream.get_size() == 11
    assert stream.get_size() == 11
    assert calls == 1
    monkeypatch.undo()
    stream.close()


@pytest.mark.asyncio
async def test_set_size_overrides(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop(), size=3)
    assert stream.get_size() == 3
    assert stream.set_size(7) is stream
    assert stream.get_size() == 7
    stream.close()


@pytest.mark.asyncio
async def test_pipe_has_no_size(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, _ = pipe_pair
    stream = Stream(reader, asyncio.get_running_loop())
    assert stream.get_size() is None
    stream.close()


@pytest.mark.asyncio
async def test_stringification_reads_from_start(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    stream.read(6)
    assert bytes(stream) == b"hello world"
    assert str(stream) == "hello world"
    stream.close()


@pytest.mark.asyncio
async def test_metadata_custom_keys_win(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop(), metadata={"uri": "custom://x", "tag": 1})

    meta = stream.get_metadata()
    assert meta["uri"] == "custom://x"
    assert meta["tag"] == 1
    assert meta["seekable"] is True
    assert meta["stream_type"] == "file"
    assert stream.get_metadata("uri") == "custom://x"
    assert stream.get_metadata("blocked") is True
    assert stream.get_metadata("missing") is None
    stream.close()


# ═════════════════════════════════════════════════════════════════════════════
# Attach / Detach
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_detach_hands_back_handle(counting_file: CountingFile) -> None:
    stream = Stream(counting_file, asyncio.get_running_loop())
    seen = record(stream, "end", "close")

    assert stream.detach() is counting_file
    assert stream.handle is None
    assert not (stream.is_readable() or stream.is_writable() or stream.is_seekable())
    assert stream.read(4) == b""
    assert stream.tell() is None
    assert stream.eof()
    assert stream.get_size() is None
    assert stream.get_metadata() == {}
    assert stream.get_metadata("uri") is None
    assert stream.write(b"x") is False

    stream.close()
    assert seen == []
    assert not counting_file.closed


@pytest.mark.asyncio
async def test_detach_while_ending_stays_silent(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    _, writer = pipe_pair
    stream = Stream(writer, asyncio.get_running_loop(), soft_limit=4)
    stream.write(b"x" * 100)
    stream.end()
    assert stream.closing
    seen = record(stream, "end", "close")

    assert stream.detach() is writer
    assert not stream.closing
    stream.close()
    await asyncio.sleep(0.01)

    assert seen == []
    assert not writer.closed


@pytest.mark.asyncio
async def test_attach_rebinds_capabilities(
    counting_file: CountingFile,
    pipe_pair: tuple[io.FileIO, io.FileIO],
) -> None:
    reader, writer = pipe_pair
    stream = Stream(reader, asyncio.get_running_loop())
    assert not stream.is_seekable()

    stream.attach(counting_file)

    assert stream.handle is counting_file
    assert stream.is_seekable()
    assert stream.read(5) == b"hello"
    assert not reader.closed
    stream.close()
    assert counting_file.closed


@pytest.mark.asyncio
async def test_attach_while_active_rearms_read_watch(pipe_pair: tuple[io.FileIO, io.FileIO]) -> None:
    reader, writer = pipe_pair
    r, w = os.pipe()
    new_reader, new_writer = io.FileIO(r, "rb"), io.FileIO(w, "wb")
    try:
        stream = Stream(reader, asyncio.get_running_loop())
        seen = record(stream, "data")

        stream.attach(new_reader)

        assert stream.mode is StreamMode.NON_BLOCKING
        assert not os.get_blocking(new_reader.fileno())
        writer.write(b"old")
        new_writer.write(b"new")
        await next_event(stream, "data")
        await asyncio.sleep(0.01)
        assert seen == [("data", b"new", stream)]
        stream.close()
        assert not reader.closed
    finally:
        for end in (new_reader, new_writer):
            if not end.closed:
                end.close()


# ═════════════════════════════════════════════════════════════════════════════
# Sockets
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_socket_is_duplex() -> None:
    loop = asyncio.get_running_loop()
    ours, peer = socket.socketpair()
    peer.setblocking(False)
    try:
        stream = Stream(ours.makefile("rwb", buffering=0), loop)
        assert not stream.is_seekable()
        assert stream.get_size() is None

        await loop.sock_sendall(peer, b"ping")
        chunk, source = await next_event(stream, "data")
        assert (chunk, source) == (b"ping", stream)

        stream.write(b"pong")
        assert await asyncio.wait_for(loop.sock_recv(peer, 4), 2.0) == b"pong"

        closed = record(stream, "close")
        peer.close()
        await next_event(stream, "end")
        assert closed == [("close", stream)]
    finally:
        ours.close()
        peer.close()
