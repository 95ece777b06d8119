"""
Reconciliation loop.

Once per interval, compares the upstream "my subscriptions" list with the
registry and queues Subscribe for new channels and Unsubscribe for
dropped ones.  Channel metadata is cached in :class:`KnownEntities` for
the dashboard.  The diff is a snapshot of two point-in-time sets; nothing
is flagged or swept in between.

A tick whose upstream listing is unchanged (HTTP 304 against the stored
ETag) writes nothing.  Any upstream failure aborts only the current
tick; the next scheduled tick tries again.  The ETag is remembered only
after a tick's writes have all succeeded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional

from ..clients.youtube_client import SubscriptionsApiClient
from ..errors import TransientUpstreamError
from ..models import SubscriptionAction
from ..shutdown import race_shutdown, sleep_or_shutdown
from . import metrics
from .action_queue import ActionQueue
from .known_entities import KnownEntities
from .registry import SubscriptionRegistry

if TYPE_CHECKING:
    from ..clients.token_manager import TokenManager

logger = logging.getLogger(__name__)


@dataclass
class ReconcileSummary:
    status: str
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)


class SubscriptionReconciler:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        queue: ActionQueue,
        known: KnownEntities,
        tokens: "TokenManager",
        api: SubscriptionsApiClient,
        interval: float = 3600.0,
        timer: Optional[Callable[[], float]] = None,
    ) -> None:
        self.registry = registry
        self.queue = queue
        self.known = known
        self.tokens = tokens
        self.api = api
        self.interval = interval
        self.timer = timer
        self.last_etag: Optional[str] = None

    async def tick(self, shutdown: asyncio.Event) -> Optional[ReconcileSummary]:
        """Run one reconciliation pass.

        Returns ``None`` if shutdown was requested while waiting for a
        token.  Store failures propagate.
        """
        previous = await self.registry.all_topic_ids()
        stopped, token = await race_shutdown(shutdown, self.tokens.wait_for_token())
        if stopped:
            return None
        try:
            listing = await self.api.list_subscriptions(token, self.last_etag)
        except TransientUpstreamError as exc:
            logger.error("Reconciliation aborted: %s", exc)
            metrics.RECONCILE_TICKS.labels(result="failed").inc()
            return ReconcileSummary(status="failed")
        if listing is None:
            metrics.RECONCILE_TICKS.labels(result="not_modified").inc()
            return ReconcileSummary(status="not_modified")

        current = set(listing.entities)
        added = sorted(current - previous)
        removed = sorted(previous - current)
        actions = [(topic_id, SubscriptionAction.SUBSCRIBE) for topic_id in added]
        actions += [(topic_id, SubscriptionAction.UNSUBSCRIBE) for topic_id in removed]
        await self.queue.enqueue_many(actions)
        await self.known.upsert_many(listing.entities.values())
        self.last_etag = listing.etag

        logger.info(
            "Reconciled %d upstream subscription(s): %d to subscribe, %d to unsubscribe",
            len(current),
            len(added),
            len(removed),
        )
        metrics.RECONCILE_TICKS.labels(result="updated").inc()
        return ReconcileSummary(status="updated", added=added, removed=removed)

    async def run(self, shutdown: asyncio.Event) -> None:
        """Tick immediately, then every ``interval`` seconds.

        Ticks that were missed while a previous one overran are skipped,
        not replayed.
        """
        timer = self.timer or asyncio.get_running_loop().time
        logger.info("Reconciliation loop started (interval=%ss)", self.interval)
        next_tick = timer()
        while not shutdown.is_set():
            await self.tick(shutdown)
            now = timer()
            next_tick += self.interval
            if next_tick <= now:
                missed = int((now - next_tick) // self.interval) + 1
                next_tick += missed * self.interval
            if await sleep_or_shutdown(shutdown, next_tick - now):
                break
        logger.info("Reconciliation loop stopped")
