"""FailedOperation repository (error-recovery ledger storage)."""
from __future__ import annotations

from datetime import datetime
from typing import List

from sqlalchemy import select

from officesync.infra.database.models.failed_operation import FailedOperation
from officesync.infra.database.repositories.base import BaseRepository


class FailedOperationRepository(BaseRepository[FailedOperation]):
    model = FailedOperation

    async def list_due(self, now: datetime, *, limit: int = 50) -> List[FailedOperation]:
        stmt = (
            select(FailedOperation)
            .where(FailedOperation.status == "pending", FailedOperation.next_retry_at <= now)
            .order_by(FailedOperation.next_retry_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_recent(self, *, status: str | None = None, limit: int = 100) -> List[FailedOperation]:
        stmt = select(FailedOperation).order_by(FailedOperation.created_at.desc()).limit(limit)
        if status:
            stmt = stmt.where(FailedOperation.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
