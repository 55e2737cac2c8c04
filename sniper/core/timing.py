"""Clock and interval helpers for polling loops."""

import asyncio
import time
from collections.abc import AsyncIterator

from .interfaces import Clock


class SystemClock:
    """Wall-clock time backed by ``asyncio.sleep``."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


async def interval_ticks(
    clock: Clock, interval: float, duration: float
) -> AsyncIterator[int]:
    """Yield a tick immediately and then every ``interval`` seconds.

    Stops once the next tick would land past ``duration`` seconds from the
    first one. The caller owns the loop body; breaking out of the ``async
    for`` ends the sequence early.
    """
    deadline = clock.now() + duration
    tick = 0
    while True:
        yield tick
        tick += 1
        if clock.now() + interval > deadline:
            return
        await clock.sleep(interval)
