"""Tests for the shutdown helpers and the coalescing wake signal."""

from __future__ import annotations

import asyncio

import pytest

from hubsync.services.wake_signal import WakeSignal
from hubsync.shutdown import race_shutdown, sleep_or_shutdown


@pytest.mark.asyncio
async def test_sleep_or_shutdown() -> None:
    shutdown = asyncio.Event()
    assert await sleep_or_shutdown(shutdown, 0.01) is False
    shutdown.set()
    assert await sleep_or_shutdown(shutdown, 60) is True


@pytest.mark.asyncio
async def test_race_returns_result_when_operation_wins() -> None:
    async def work() -> int:
        return 7

    assert await race_shutdown(asyncio.Event(), work()) == (False, 7)


@pytest.mark.asyncio
async def test_race_cancels_operation_when_shutdown_wins() -> None:
    cancelled = asyncio.Event()

    async def forever() -> None:
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.set()
            raise

    shutdown = asyncio.Event()
    racer = asyncio.create_task(race_shutdown(shutdown, forever()))
    await asyncio.sleep(0.01)
    shutdown.set()

    assert await asyncio.wait_for(racer, timeout=1) == (True, None)
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_race_propagates_operation_errors() -> None:
    async def broken() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await race_shutdown(asyncio.Event(), broken())


@pytest.mark.asyncio
async def test_wake_signal_coalesces_notifications() -> None:
    wake = WakeSignal()
    for _ in range(5):
        wake.notify()
    await asyncio.wait_for(wake.wait(), timeout=1)
    assert not wake.is_set

    waiter = asyncio.create_task(wake.wait())
    await asyncio.sleep(0.01)
    assert not waiter.done()
    wake.notify()
    await asyncio.wait_for(waiter, timeout=1)
