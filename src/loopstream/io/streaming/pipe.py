"""Wire a readable stream's events into a writable destination."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .protocols import StreamEventKind

if TYPE_CHECKING:
    from .protocols import EventStream, WritableStream


def pipe(source: EventStream, dest: WritableStream, *, end: bool = True) -> None:
    """Forward every ``data`` chunk of ``source`` to ``dest.write``.

    Backpressure: a ``False`` from ``dest.write`` pauses ``source`` until
    ``dest`` emits ``drain``. When ``end`` is true, ``source``'s ``end``
    ends ``dest``.

    Does nothing if ``source`` is not readable; only pauses ``source`` if
    ``dest`` is not writable.
    """
    if not source.is_readable():
        return
    if not dest.is_writable():
        source.pause()
        return

    dest_emits = callable(getattr(dest, "on", None)) and callable(getattr(dest, "emit", None))
    if dest_emits:
        dest.emit(StreamEventKind.PIPE, source)  # type: ignore[attr-defined]

    def on_data(chunk: bytes, _source: object) -> None:
        if dest.write(chunk) is False:
            source.pause()

    source.on(StreamEventKind.DATA, on_data)

    if dest_emits:
        dest.on(StreamEventKind.DRAIN, lambda *_: source.resume())  # type: ignore[attr-defined]

    if end and source is not dest:
        source.on(StreamEventKind.END, lambda *_: dest.end())
