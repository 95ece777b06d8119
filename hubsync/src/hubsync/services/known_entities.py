"""Channel display metadata cached from the upstream subscriptions list.

The reconciler writes these rows; the dashboard reads them.
"""

from __future__ import annotations

from typing import Iterable, List

from sqlalchemy import select

from ..models import KnownEntity
from .database import Database, known_channels_table

_t = known_channels_table


class KnownEntities:
    def __init__(self, database: Database) -> None:
        self.database = database

    async def upsert_many(self, entities: Iterable[KnownEntity]) -> int:
        """Insert or update every entity by id.  Returns the number of rows written."""
        rows = [
            {
                "channel_id": entity.id,
                "channel_name": entity.display_name,
                "channel_profile_picture": entity.display_image,
            }
            for entity in entities
        ]
        if not rows:
            return 0
        stmt = self.database.upsert(_t, rows, key=["channel_id"])
        async with self.database.connect("add channels to the known channels list") as conn:
            await conn.execute(stmt)
        return len(rows)

    async def all(self) -> List[KnownEntity]:
        async with self.database.connect("list known channels") as conn:
            result = await conn.execute(select(_t).order_by(_t.c.channel_name))
            rows = result.mappings().all()
        return [
            KnownEntity(
                id=row["channel_id"],
                display_name=row["channel_name"],
                display_image=row["channel_profile_picture"],
            )
            for row in rows
        ]
