"""WebhookEvent repository (idempotency ledger storage)."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select

from officesync.infra.database.models.webhook_event import WebhookEvent
from officesync.infra.database.repositories.base import BaseRepository


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    model = WebhookEvent

    async def get_status(self, fingerprint: str) -> Optional[str]:
        row = await self.get_by_id(fingerprint)
        return row.status if row is not None else None

    async def completed_since(self, entity_id: str, since: datetime) -> bool:
        stmt = (
            select(WebhookEvent.fingerprint)
            .where(
                WebhookEvent.entity_id == entity_id,
                WebhookEvent.status == "completed",
                WebhookEvent.completed_at > since,
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def record(
        self,
        fingerprint: str,
        *,
        event_type: str,
        entity_id: str,
        status: str,
        detail: str = "",
        payload: Optional[Dict[str, Any]] = None,
    ) -> WebhookEvent:
        """Write the ledger row. A completed row is returned unchanged."""
        now = datetime.now(timezone.utc)
        row = await self.get_by_id(fingerprint)
        if row is None:
            return await self.create({
                "fingerprint": fingerprint,
                "event_type": event_type,
                "entity_id": entity_id,
                "status": status,
                "detail": detail,
                "payload": payload or {},
                "received_at": now,
                "completed_at": now if status == "completed" else None,
            })
        if row.status == "completed":
            return row
        row.status = status
        row.detail = detail
        if status == "completed":
            row.completed_at = now
        await self.session.flush()
        return row
