"""Minimal synchronous event emitter.

Listeners are plain callables invoked in registration order with the
arguments passed to ``emit``. Exceptions raised by a listener propagate
to whoever called ``emit``. Each ``on``/``once`` call is its own
registration, so one callable may be both persistent and one-shot.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

Listener = Callable[..., object]


@dataclass(slots=True, eq=False)
class _Registration:
    listener: Listener
    once: bool = False


class EventEmitter:
    """Named-event pub/sub used by streams and write buffers."""

    __slots__ = ("_listeners", "__weakref__")

    def __init__(self) -> None:
        self._listeners: defaultdict[str, list[_Registration]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        """Register ``listener`` for every future ``event``."""
        self._listeners[event].append(_Registration(listener))

    def once(self, event: str, listener: Listener) -> None:
        """Register ``listener`` for the next ``event`` only."""
        self._listeners[event].append(_Registration(listener, once=True))

    def emit(self, event: str, *args: object) -> None:
        # Snapshot so listeners added during emission wait for the next one
        for registration in tuple(self._listeners.get(event, ())):
            registered = self._listeners.get(event, ())
            if registration not in registered:
                continue  # removed by an earlier listener
            if registration.once:
                self._drop(event, registration)
            registration.listener(*args)

    def remove_listener(self, event: str, listener: Listener) -> None:
        """Drop every registration of ``listener`` for ``event``."""
        if registered := self._listeners.get(event):
            registered[:] = [r for r in registered if r.listener != listener]
            if not registered:
                del self._listeners[event]

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Drop listeners for ``event``, or for every event when omitted."""
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listeners(self, event: str) -> list[Listener]:
        return [r.listener for r in self._listeners.get(event, ())]

    def _drop(self, event: str, registration: _Registration) -> None:
        registered = self._listeners[event]
        registered.remove(registration)
        if not registered:
            del self._listeners[event]
