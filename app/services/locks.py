"""
Write serialization helpers.

PostgreSQL writers take a transaction-scoped advisory lock. Other dialects
fall back to process-local ``asyncio.Lock`` objects keyed the same way.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession


class KeyedLocks:
    """Process-local locks per key; a key's lock is dropped once nobody holds or awaits it"""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


async def advisory_xact_lock(db: AsyncSession, key: str) -> None:
    """Block until the transaction owns the PostgreSQL advisory lock for ``key``"""
    await db.execute(select(func.pg_advisory_xact_lock(func.hashtextextended(key, 0))))


def is_postgresql(db: AsyncSession) -> bool:
    return db.get_bind().dialect.name == "postgresql"
