"""
Renewal scheduler.

Sleeps until the soonest lease is within ``window - delay`` of expiring,
then queues a Refresh for every subscription expiring inside ``window``.
A lease is refreshed once; the topic is considered again when the hub
confirms the renewal and its expiration moves.
It never talks to the hub and never writes the registry.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Callable, Dict, List, Optional

from ..models import ActiveSubscription, SubscriptionAction, utcnow
from ..shutdown import race_shutdown, sleep_or_shutdown
from . import metrics
from .action_queue import ActionQueue
from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class RenewalScheduler:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        queue: ActionQueue,
        window: dt.timedelta = dt.timedelta(hours=24),
        delay: dt.timedelta = dt.timedelta(hours=1),
        fallback: dt.timedelta = dt.timedelta(hours=24),
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        if delay >= window:
            raise ValueError("delay must be smaller than window")
        self.registry = registry
        self.queue = queue
        self.window = window
        self.delay = delay
        self.fallback = fallback
        self.clock = clock
        # topic id -> expiration a Refresh was already queued for
        self._refreshed: Dict[str, dt.datetime] = {}

    def compute_sleep(self, soonest: Optional[dt.datetime], now: dt.datetime) -> dt.timedelta:
        if soonest is None:
            return self.fallback
        remaining = (soonest - now) - (self.window - self.delay)
        return max(dt.timedelta(0), remaining)

    def _unhandled(self, subscriptions: List[ActiveSubscription]) -> List[ActiveSubscription]:
        return [sub for sub in subscriptions if self._refreshed.get(sub.topic_id) != sub.expiration]

    async def next_sleep(self) -> dt.timedelta:
        """How long to wait before the next ``enqueue_expiring`` pass.

        Leases already refreshed are ignored until the hub confirms a new
        expiration.  While refreshes are outstanding the scheduler wakes
        at least every ``delay`` to pick up those confirmations.
        """
        now = self.clock()
        soonest = await self.registry.soonest_expiration()
        if soonest is None or not self._refreshed:
            return self.compute_sleep(soonest, now)
        current = await self.registry.by_expiration()
        live = {sub.topic_id: sub.expiration for sub in current}
        self._refreshed = {
            topic_id: expiration
            for topic_id, expiration in self._refreshed.items()
            if live.get(topic_id) == expiration
        }
        pending = self._unhandled(current)
        pause = self.compute_sleep(pending[0].expiration if pending else None, now)
        if self._refreshed:
            pause = min(pause, self.delay)
        return pause

    async def enqueue_expiring(self) -> List[str]:
        """Queue a Refresh for every lease ending before ``now + window``.

        Each lease is refreshed once; a topic is queued again only after
        its expiration changes.
        """
        expiring = self._unhandled(await self.registry.expiring_before(self.clock() + self.window))
        topic_ids = [sub.topic_id for sub in expiring]
        await self.queue.enqueue_many((topic_id, SubscriptionAction.REFRESH) for topic_id in topic_ids)
        for sub in expiring:
            self._refreshed[sub.topic_id] = sub.expiration
        if topic_ids:
            metrics.REFRESH_ENQUEUED.inc(len(topic_ids))
            logger.info("Queued refresh for %d subscription(s)", len(topic_ids))
        return topic_ids

    async def run(self, shutdown: asyncio.Event) -> None:
        logger.info("Renewal scheduler started (window=%s, delay=%s)", self.window, self.delay)
        while not shutdown.is_set():
            pause = await self.next_sleep()
            logger.debug("Next renewal check in %s", pause)
            if await sleep_or_shutdown(shutdown, pause.total_seconds()):
                break
            stopped, _ = await race_shutdown(shutdown, self.enqueue_expiring())
            if stopped:
                break
        logger.info("Renewal scheduler stopped")
