"""
Durable action queue for hub subscription management.

Actions are append-only rows in ``subscription_queue``.  An action is
pending until a matching row exists in ``subscription_queue_result``;
that row is written once and never rewritten, so a crash between
computing and persisting a result leaves the action pending and it will
be processed again.

Every ``enqueue`` call inserts its whole batch in one statement and then
notifies the consumer's :class:`~hubsync.services.wake_signal.WakeSignal`
exactly once.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import insert, select

from ..models import (
    ActiveSubscription,
    PendingAction,
    QueueAction,
    QueueEntry,
    QueueResult,
    SubscriptionAction,
    utcnow,
)
from .database import (
    Database,
    active_subscriptions_table,
    subscription_queue_result_table,
    subscription_queue_table,
)
from .wake_signal import WakeSignal

logger = logging.getLogger(__name__)

_q = subscription_queue_table
_r = subscription_queue_result_table
_a = active_subscriptions_table


class ActionQueue:
    def __init__(
        self,
        database: Database,
        wake: WakeSignal,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.database = database
        self.wake = wake
        self.clock = clock

    async def enqueue(self, topic_id: str, kind: SubscriptionAction) -> int:
        return await self.enqueue_many([(topic_id, kind)])

    async def enqueue_many(self, actions: Iterable[Tuple[str, SubscriptionAction]]) -> int:
        """Append one row per ``(topic_id, kind)`` and wake the consumer once.

        Returns the number of actions inserted.  An empty batch writes
        nothing and does not wake the consumer.
        """
        now = self.clock()
        rows = [
            {"channel_id": topic_id, "action": SubscriptionAction(kind).value, "timestamp": now}
            for topic_id, kind in actions
        ]
        if not rows:
            return 0
        async with self.database.connect("add actions to the subscription queue") as conn:
            await conn.execute(insert(_q), rows)
        logger.debug("Queued %d subscription action(s)", len(rows))
        self.wake.notify()
        return len(rows)

    async def pending(self) -> List[PendingAction]:
        """Every action without a result, joined with its active subscription."""
        stmt = (
            select(
                _q.c.id,
                _q.c.channel_id,
                _q.c.action,
                _q.c.timestamp,
                _a.c.expiration,
            )
            .select_from(
                _q.outerjoin(_r, _r.c.queue_id == _q.c.id).outerjoin(
                    _a, _a.c.channel_id == _q.c.channel_id
                )
            )
            .where(_r.c.queue_id.is_(None))
            .order_by(_q.c.id)
        )
        async with self.database.connect("get pending actions") as conn:
            rows = (await conn.execute(stmt)).all()
        pending = []
        for row in rows:
            action = QueueAction(
                id=row.id,
                topic_id=row.channel_id,
                kind=SubscriptionAction(row.action),
                enqueued_at=row.timestamp,
            )
            active = None
            if row.expiration is not None:
                active = ActiveSubscription(topic_id=row.channel_id, expiration=row.expiration)
            pending.append(PendingAction(action=action, active=active))
        return pending

    async def record_result(self, action_id: int, error: Optional[str]) -> QueueResult:
        """Persist the terminal outcome of an action.

        A result that already exists is left untouched.
        """
        result = QueueResult(action_id=action_id, error=error, completed_at=self.clock())
        stmt = self.database.insert_ignore(
            _r,
            {"queue_id": result.action_id, "error": result.error, "timestamp": result.completed_at},
            key=["queue_id"],
        )
        async with self.database.connect("record a subscription queue result") as conn:
            await conn.execute(stmt)
        return result

    async def get_result(self, action_id: int) -> Optional[QueueResult]:
        async with self.database.connect("get a subscription queue result") as conn:
            row = (await conn.execute(select(_r).where(_r.c.queue_id == action_id))).first()
        if row is None:
            return None
        return QueueResult(action_id=row.queue_id, error=row.error, completed_at=row.timestamp)

    async def history(self, limit: Optional[int] = None) -> List[QueueEntry]:
        """Actions with their results, newest first, for the status page."""
        stmt = (
            select(
                _q.c.id,
                _q.c.channel_id,
                _q.c.action,
                _q.c.timestamp,
                _r.c.queue_id.label("result_id"),
                _r.c.error,
                _r.c.timestamp.label("completed_at"),
            )
            .select_from(_q.outerjoin(_r, _r.c.queue_id == _q.c.id))
            .order_by(_q.c.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.database.connect("list the subscription queue") as conn:
            rows = (await conn.execute(stmt)).all()
        entries = []
        for row in rows:
            action = QueueAction(
                id=row.id,
                topic_id=row.channel_id,
                kind=SubscriptionAction(row.action),
                enqueued_at=row.timestamp,
            )
            result = None
            if row.result_id is not None:
                result = QueueResult(
                    action_id=row.result_id, error=row.error, completed_at=row.completed_at
                )
            entries.append(QueueEntry(action=action, result=result))
        return entries
