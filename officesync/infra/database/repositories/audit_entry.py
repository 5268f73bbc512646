"""AuditEntry repository."""
from __future__ import annotations

from typing import List

from sqlalchemy import select

from officesync.infra.database.models.audit_entry import AuditEntry
from officesync.infra.database.repositories.base import BaseRepository


class AuditEntryRepository(BaseRepository[AuditEntry]):
    model = AuditEntry

    async def list_recent(self, *, event_type: str | None = None, limit: int = 100) -> List[AuditEntry]:
        stmt = select(AuditEntry).order_by(AuditEntry.timestamp.desc()).limit(limit)
        if event_type:
            stmt = stmt.where(AuditEntry.event_type == event_type)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
