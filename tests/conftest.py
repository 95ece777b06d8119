"""Pytest configuration for path setup and shared fixtures.

The test suite imports ``hubsync`` from ``hubsync/src``.  When pytest is
executed without the package installed, that directory is not on
``sys.path``; this file puts it there together with the project root
(so ``tests.helpers`` resolves).
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]

for path in (ROOT, ROOT / "hubsync" / "src"):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from hubsync.services.database import Database  # noqa: E402


@pytest_asyncio.fixture
async def database(tmp_path):
    """A fresh SQLite database with all tables created."""
    db = Database.from_uri(f"sqlite+aiosqlite:///{tmp_path / 'hubsync.sqlite'}")
    await db.init_db()
    try:
        yield db
    finally:
        await db.dispose()
