"""
Subscription registry: the persisted set of topics the hub has confirmed.

This is the single source of truth for "currently believed subscribed".
It is written only by the hub verification handler after the hub calls
back; the renewal scheduler and the reconciler only read it.  The
registry itself holds no business logic; callers decide what an
expiration means.
"""

from __future__ import annotations

import datetime as dt
from typing import List, Optional, Set

from sqlalchemy import delete, func, select

from ..models import ActiveSubscription
from .database import Database, active_subscriptions_table

_t = active_subscriptions_table


class SubscriptionRegistry:
    def __init__(self, database: Database) -> None:
        self.database = database

    async def upsert(self, topic_id: str, expiration: dt.datetime) -> None:
        """Insert or update the lease for ``topic_id``."""
        stmt = self.database.upsert(
            _t,
            [{"channel_id": topic_id, "expiration": expiration}],
            key=["channel_id"],
        )
        async with self.database.connect("upsert an active subscription") as conn:
            await conn.execute(stmt)

    async def remove(self, topic_id: str) -> None:
        async with self.database.connect("remove an active subscription") as conn:
            await conn.execute(delete(_t).where(_t.c.channel_id == topic_id))

    async def soonest_expiration(self) -> Optional[dt.datetime]:
        """Earliest lease end over all rows, or ``None`` when empty."""
        async with self.database.connect("get the soonest expiration") as conn:
            result = await conn.execute(select(func.min(_t.c.expiration)))
            return result.scalar_one_or_none()

    async def expiring_before(self, instant: dt.datetime) -> List[ActiveSubscription]:
        """All subscriptions whose lease ends strictly before ``instant``."""
        async with self.database.connect("get expiring subscriptions") as conn:
            result = await conn.execute(
                select(_t.c.channel_id, _t.c.expiration)
                .where(_t.c.expiration < instant)
                .order_by(_t.c.expiration)
            )
            rows = result.all()
        return [ActiveSubscription(topic_id=row.channel_id, expiration=row.expiration) for row in rows]

    async def by_expiration(self) -> List[ActiveSubscription]:
        """Every subscription, soonest lease end first."""
        async with self.database.connect("list active subscriptions") as conn:
            result = await conn.execute(
                select(_t.c.channel_id, _t.c.expiration).order_by(_t.c.expiration, _t.c.channel_id)
            )
            rows = result.all()
        return [ActiveSubscription(topic_id=row.channel_id, expiration=row.expiration) for row in rows]

    async def get(self, topic_id: str) -> Optional[ActiveSubscription]:
        async with self.database.connect("get an active subscription") as conn:
            result = await conn.execute(
                select(_t.c.channel_id, _t.c.expiration).where(_t.c.channel_id == topic_id)
            )
            row = result.first()
        if row is None:
            return None
        return ActiveSubscription(topic_id=row.channel_id, expiration=row.expiration)

    async def all_topic_ids(self) -> Set[str]:
        async with self.database.connect("get all channel ids") as conn:
            result = await conn.execute(select(_t.c.channel_id))
            return set(result.scalars().all())
