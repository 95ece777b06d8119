"""Persistence for the single OAuth credential."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, select

from ..models import Credential
from .database import Database, oauth_table

# Only one credential exists at a time; it always lives in this row.
_CREDENTIAL_ROW = 1


class CredentialStore:
    def __init__(self, database: Database) -> None:
        self.database = database

    async def load(self) -> Optional[Credential]:
        async with self.database.connect("load the oauth credential") as conn:
            result = await conn.execute(
                select(oauth_table).where(oauth_table.c.row_id == _CREDENTIAL_ROW)
            )
            row = result.mappings().first()
        if row is None:
            return None
        return Credential(
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            expires_at=row["expires_at"],
        )

    async def save(self, credential: Credential) -> None:
        stmt = self.database.upsert(
            oauth_table,
            [
                {
                    "row_id": _CREDENTIAL_ROW,
                    "access_token": credential.access_token,
                    "refresh_token": credential.refresh_token,
                    "expires_at": credential.expires_at,
                }
            ],
            key=["row_id"],
        )
        async with self.database.connect("save the oauth credential") as conn:
            await conn.execute(stmt)

    async def clear(self) -> None:
        async with self.database.connect("clear the oauth credential") as conn:
            await conn.execute(delete(oauth_table).where(oauth_table.c.row_id == _CREDENTIAL_ROW))
