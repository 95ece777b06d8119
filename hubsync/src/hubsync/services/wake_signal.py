"""
Coalescing wake signal between queue producers and the queue consumer.

This is a dirty flag, not a work queue.  Any number of ``notify()`` calls
made while the consumer is busy collapse into a single wake-up, so the
consumer must re-query everything that is pending each time it wakes.
"""

from __future__ import annotations

import asyncio


class WakeSignal:
    def __init__(self) -> None:
        self._dirty = asyncio.Event()

    def notify(self) -> None:
        """Mark that something changed.  Never blocks, never queues."""
        self._dirty.set()

    @property
    def is_set(self) -> bool:
        return self._dirty.is_set()

    async def wait(self) -> None:
        """Wait until marked dirty, then clear the mark."""
        await self._dirty.wait()
        self._dirty.clear()
