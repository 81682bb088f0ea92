"""Readiness watches on an explicit asyncio event loop.

``EventLoopPort`` is the only place that talks to the loop. Watches are
keyed by the handle object and remember its file descriptor, so a watch
can still be removed after the handle itself has been closed.

Regular files are always ready and the epoll selector refuses them
(``PermissionError``). For those the port re-schedules the callback with
``loop.call_soon`` until the watch is removed, which keeps delivery to one
callback per loop iteration.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

from loopstream.runtime.observability import get_logger

log = get_logger("loopstream.loop")

ReadyCallback = Callable[[object], object]


@dataclass(slots=True)
class _Watch:
    fd: int
    callback: ReadyCallback
    polled: asyncio.Handle | None = None  # set for always-ready handles


def fileno(handle: object) -> int:
    """File descriptor of ``handle`` (an int fd or an object with fileno())."""
    return handle if isinstance(handle, int) else handle.fileno()  # type: ignore[attr-defined]


class EventLoopPort:
    """Register/unregister read and write readiness callbacks for handles."""

    __slots__ = ("loop", "_readers", "_writers")

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self._readers: dict[int, _Watch] = {}
        self._writers: dict[int, _Watch] = {}

    def register_read_watch(self, handle: object, callback: ReadyCallback) -> None:
        """Invoke ``callback(handle)`` whenever ``handle`` is read-ready."""
        self._register(self._readers, handle, callback, self.loop.add_reader, self.loop.remove_reader)

    def register_write_watch(self, handle: object, callback: ReadyCallback) -> None:
        """Invoke ``callback(handle)`` whenever ``handle`` is write-ready."""
        self._register(self._writers, handle, callback, self.loop.add_writer, self.loop.remove_writer)

    def unregister_watch(self, handle: object) -> bool:
        """Remove the read watch. Returns whether one was registered."""
        return self._unregister(self._readers, handle, self.loop.remove_reader)

    def unregister_write_watch(self, handle: object) -> bool:
        return self._unregister(self._writers, handle, self.loop.remove_writer)

    def unregister_all(self, handle: object) -> None:
        self.unregister_watch(handle)
        self.unregister_write_watch(handle)

    def is_watching(self, handle: object, *, write: bool = False) -> bool:
        return id(handle) in (self._writers if write else self._readers)

    # ─────────────────────────────────────────────────────────────────────────

    def _register(
        self,
        table: dict[int, _Watch],
        handle: object,
        callback: ReadyCallback,
        add: Callable[..., None],
        remove: Callable[[int], bool],
    ) -> None:
        self._unregister(table, handle, remove)
        watch = _Watch(fileno(handle), callback)
        try:
            add(watch.fd, callback, handle)
        except (PermissionError, NotImplementedError):
            log.debug("handle not pollable, driving it from call_soon", fd=watch.fd)
            watch.polled = self.loop.call_soon(self._poll, table, id(handle), handle)
        table[id(handle)] = watch

    def _unregister(self, table: dict[int, _Watch], handle: object, remove: Callable[[int], bool]) -> bool:
        if (watch := table.pop(id(handle), None)) is None:
            return False
        if watch.polled is not None:
            watch.polled.cancel()
        else:
            remove(watch.fd)
        return True

    def _poll(self, table: dict[int, _Watch], key: int, handle: object) -> None:
        if (watch := table.get(key)) is None:
            return
        # Re-arm first so the callback may cancel it by unregistering
        watch.polled = self.loop.call_soon(self._poll, table, key, handle)
        watch.callback(handle)
