"""
Cooperative shutdown helpers.

Every long-running task receives the same ``asyncio.Event``.  Suspension
points race whatever they are waiting for against that event so that a
shutdown request is observed promptly.  An operation that loses the race
is cancelled; one that has already finished is allowed to return.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Tuple, TypeVar

T = TypeVar("T")


async def sleep_or_shutdown(shutdown: asyncio.Event, seconds: float) -> bool:
    """Sleep for ``seconds``.  Returns ``True`` if shutdown was requested first."""
    if shutdown.is_set():
        return True
    try:
        await asyncio.wait_for(shutdown.wait(), timeout=max(0.0, seconds))
    except asyncio.TimeoutError:
        return False
    return True


async def race_shutdown(shutdown: asyncio.Event, awaitable: Awaitable[T]) -> Tuple[bool, T | None]:
    """Await ``awaitable`` unless shutdown is requested first.

    Returns ``(True, None)`` when shutdown won and ``(False, result)``
    otherwise.  Exceptions raised by ``awaitable`` propagate.
    """
    operation = asyncio.ensure_future(awaitable)
    if shutdown.is_set():
        operation.cancel()
        return True, None
    stopper = asyncio.ensure_future(shutdown.wait())
    try:
        await asyncio.wait({operation, stopper}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        operation.cancel()
        raise
    finally:
        if not stopper.done():
            stopper.cancel()
    if operation.done():
        return False, operation.result()
    operation.cancel()
    try:
        await operation
    except asyncio.CancelledError:
        pass
    return True, None
