"""Cluster-wide locks for scheduled jobs.

``AdvisoryJobLock`` uses PostgreSQL session advisory locks so only one
instance runs the daily resync or the recovery sweep at a time. The lock is
tried, never waited on: an instance that loses simply skips that run.
"""
from __future__ import annotations

import asyncio
import logging
import zlib
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


def lock_id(name: str) -> int:
    """Stable 32-bit key for a job name."""
    return zlib.crc32(f"officesync:{name}".encode("utf-8"))


class AdvisoryJobLock:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[bool]:
        """Yield True when this instance owns *name* for the block, else False."""
        key = lock_id(name)
        async with self._engine.connect() as connection:
            acquired = bool(
                (await connection.execute(text("SELECT pg_try_advisory_lock(:lock_id)"), {"lock_id": key})).scalar()
            )
            try:
                yield acquired
            finally:
                if acquired:
                    await connection.execute(text("SELECT pg_advisory_unlock(:lock_id)"), {"lock_id": key})


class LocalJobLock:
    """Single-process stand-in for AdvisoryJobLock."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[bool]:
        lock = self._locks.setdefault(name, asyncio.Lock())
        if lock.locked():
            yield False
            return
        async with lock:
            yield True
