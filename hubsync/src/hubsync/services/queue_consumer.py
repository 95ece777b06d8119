"""
Queue consumer: the only component that talks to the hub.

Each wake-up drains every pending action with bounded concurrency and
records one result per action.  Hub failures become the action's error
text; nothing is retried here.  A store failure is fatal and propagates
out of :meth:`QueueConsumer.run`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from ..clients.hub_client import HubClient, HubMode
from ..errors import TransientUpstreamError
from ..models import ActiveSubscription, PendingAction, QueueAction, QueueResult, SubscriptionAction
from ..shutdown import race_shutdown
from . import metrics
from .action_queue import ActionQueue
from .wake_signal import WakeSignal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionOutcome:
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueueConsumer:
    def __init__(
        self,
        queue: ActionQueue,
        hub: HubClient,
        wake: WakeSignal,
        concurrency: int = 10,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.queue = queue
        self.hub = hub
        self.wake = wake
        self.concurrency = concurrency

    async def process_action(
        self, action: QueueAction, active: Optional[ActiveSubscription]
    ) -> ActionOutcome:
        """Carry out one action against the hub and describe how it went."""
        if action.kind is SubscriptionAction.REFRESH and active is None:
            logger.info(
                "Skipping refresh of %s: no active subscription (action %d)",
                action.topic_id,
                action.id,
            )
            return ActionOutcome()
        mode = HubMode.UNSUBSCRIBE if action.kind is SubscriptionAction.UNSUBSCRIBE else HubMode.SUBSCRIBE
        try:
            await self.hub.request(mode, action.topic_id)
        except TransientUpstreamError as exc:
            logger.warning("Action %d (%s %s) failed: %s", action.id, action.kind.value, action.topic_id, exc)
            return ActionOutcome(error=str(exc))
        logger.info("Requested %s for %s (action %d)", mode.value, action.topic_id, action.id)
        return ActionOutcome()

    async def drain(self) -> List[QueueResult]:
        """Process everything pending once.  Returns the recorded results."""
        pending = await self.queue.pending()
        metrics.QUEUE_PENDING.set(len(pending))
        if not pending:
            return []
        logger.debug("Draining %d pending action(s)", len(pending))
        limiter = asyncio.Semaphore(self.concurrency)

        async def handle(item: PendingAction) -> QueueResult:
            async with limiter:
                outcome = await self.process_action(item.action, item.active)
                result = await self.queue.record_result(item.action.id, outcome.error)
            metrics.QUEUE_ACTIONS.labels(
                kind=item.action.kind.value, outcome="ok" if outcome.ok else "error"
            ).inc()
            return result

        return list(await asyncio.gather(*(handle(item) for item in pending)))

    async def run(self, shutdown: asyncio.Event) -> None:
        """Drain, wait for a wake-up, repeat until shutdown."""
        logger.info("Queue consumer started (concurrency=%d)", self.concurrency)
        while not shutdown.is_set():
            stopped, _ = await race_shutdown(shutdown, self.drain())
            if stopped:
                break
            stopped, _ = await race_shutdown(shutdown, self.wake.wait())
            if stopped:
                break
        logger.info("Queue consumer stopped")
