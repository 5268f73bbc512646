"""IdempotencyLedger: at-most-once side effects per logical webhook event.

The ledger fails open. If it cannot be read, the event is treated as not
processed and runs again; downstream writes are upserts keyed by
appointment id, so a repeat is harmless. A ``completed`` entry is never
overwritten.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from officesync.core.exceptions import TransientInfraError
from officesync.infra.database.repositories.webhook_event import WebhookEventRepository
from officesync.orchestrator.types import EventStatus

logger = logging.getLogger(__name__)


class IdempotencyLedger:
    """Ledger over the ``webhook_events`` table."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._session_factory = session_factory

    async def is_processed(self, fingerprint: str) -> bool:
        try:
            status = await self._get_status(fingerprint)
        except (SQLAlchemyError, TransientInfraError, OSError) as exc:
            logger.warning(
                "IdempotencyLedger: lookup failed for %s, treating as unprocessed (%s)",
                fingerprint, exc,
            )
            return False
        return status == EventStatus.COMPLETED.value

    async def mark_status(
        self,
        fingerprint: str,
        status: EventStatus,
        detail: str = "",
        *,
        event_type: str = "",
        entity_id: str = "",
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Durable write. Raises TransientInfraError when storage is unreachable."""
        try:
            await self._write(fingerprint, status.value, detail, event_type, entity_id, payload)
        except (SQLAlchemyError, OSError) as exc:
            raise TransientInfraError("Idempotency ledger write failed", cause=exc) from exc

    async def completed_since(self, entity_id: str, since: datetime) -> bool:
        """True when any event for *entity_id* completed after *since*.

        Unlike ``is_processed`` this does not fail open: an unreadable ledger
        raises TransientInfraError and the caller retries later.
        """
        try:
            return await self._completed_since(entity_id, since)
        except (SQLAlchemyError, OSError) as exc:
            raise TransientInfraError("Idempotency ledger lookup failed", cause=exc) from exc

    async def _get_status(self, fingerprint: str) -> Optional[str]:
        async with self._session_factory() as session:
            return await WebhookEventRepository(session).get_status(fingerprint)

    async def _completed_since(self, entity_id: str, since: datetime) -> bool:
        async with self._session_factory() as session:
            return await WebhookEventRepository(session).completed_since(entity_id, since)

    async def _write(
        self,
        fingerprint: str,
        status: str,
        detail: str,
        event_type: str,
        entity_id: str,
        payload: Optional[Dict[str, Any]],
    ) -> None:
        async with self._session_factory() as session:
            await WebhookEventRepository(session).record(
                fingerprint,
                event_type=event_type,
                entity_id=entity_id,
                status=status,
                detail=detail,
                payload=payload,
            )
            await session.commit()


class InMemoryIdempotencyLedger(IdempotencyLedger):
    """Process-local ledger for dry runs and tests."""

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)) -> None:
        super().__init__(None)
        self.entries: Dict[str, Tuple[str, str]] = {}
        self.completions: Dict[str, List[datetime]] = {}
        self._clock = clock

    async def _get_status(self, fingerprint: str) -> Optional[str]:
        entry = self.entries.get(fingerprint)
        return entry[0] if entry else None

    async def _write(self, fingerprint, status, detail, event_type, entity_id, payload) -> None:
        current = self.entries.get(fingerprint)
        if current is not None and current[0] == EventStatus.COMPLETED.value:
            return
        self.entries[fingerprint] = (status, detail)
        if status == EventStatus.COMPLETED.value:
            self.completions.setdefault(entity_id, []).append(self._clock())

    async def _completed_since(self, entity_id: str, since: datetime) -> bool:
        return any(at > since for at in self.completions.get(entity_id, ()))
