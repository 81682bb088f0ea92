"""Test helpers shared across modules."""

from __future__ import annotations

import asyncio
import io


class CountingFile(io.FileIO):
    """FileIO that counts close() calls."""

    closes = 0

    def close(self) -> None:
        self.closes += 1
        super().close()


async def next_event(emitter: object, event: str, timeout: float = 2.0) -> tuple[object, ...]:
    """Await the next emission of ``event`` and return its arguments."""
    future: asyncio.Future[tuple[object, ...]] = asyncio.get_running_loop().create_future()
    emitter.once(event, lambda *args: future.done() or future.set_result(args))  # type: ignore[attr-defined]
    return await asyncio.wait_for(future, timeout)
