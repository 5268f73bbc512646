"""RecoveryLedger: durable record of operations that exhausted inline retries.

The webhook queue hands over anything it could not finish. A timer calls
``run_scheduled_recovery`` which replays due entries through the sync
orchestrator's entry point. Success removes the entry; failure bumps the
attempt count and pushes ``next_retry_at`` out with exponential backoff.
Entries that reach ``max_attempts`` are abandoned: a critical audit entry is
written and operators are alerted.

A replay is dropped as superseded when the idempotency ledger shows that a
later event for the same entity completed after the failure was recorded. The
replay entry point runs behind any events already queued for the entity and
calls the supersession check at that point.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from officesync.clients.notifier import Notifier
from officesync.core.exceptions import NotFoundError, ProjectError
from officesync.infra.database.repositories.failed_operation import FailedOperationRepository
from officesync.orchestrator.types import AuditEventType, AuditRecord
from officesync.services.record_store import RecordStore

if TYPE_CHECKING:
    from officesync.services.idempotency_service import IdempotencyLedger

logger = logging.getLogger(__name__)

OPERATION_KINDS = ("create", "update", "delete")

REPLAY_SUPERSEDED = "superseded"

SupersededCheck = Callable[[], Awaitable[bool]]
ReplayFn = Callable[[Dict[str, Any], SupersededCheck], Awaitable[Any]]


@dataclass
class FailedOperationEntry:
    kind: str
    entity_id: str
    payload: Dict[str, Any]
    last_error: str
    next_retry_at: datetime
    attempts: int = 0
    status: str = "pending"
    failed_at: Optional[datetime] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True)
class RecoveryReport:
    attempted: int = 0
    recovered: int = 0
    rescheduled: int = 0
    abandoned: int = 0
    superseded: int = 0


def _error_text(error: BaseException) -> str:
    if isinstance(error, ProjectError):
        return f"{error.code}: {error.message}"
    return f"{error.__class__.__name__}: {error}"


class RecoveryLedger:
    """Recovery ledger over the ``failed_operations`` table."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]],
        store: RecordStore,
        notifier: Notifier,
        *,
        max_attempts: int = 5,
        initial_delay_seconds: int = 30,
        max_delay_seconds: int = 3600,
        alert_recipients: tuple = (),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._notifier = notifier
        self._max_attempts = max_attempts
        self._initial_delay = initial_delay_seconds
        self._max_delay = max_delay_seconds
        self._recipients = tuple(alert_recipients)
        self._clock = clock
        self._replay: Optional[ReplayFn] = None
        self._events = None

    def bind(self, replay: ReplayFn, *, events: Optional["IdempotencyLedger"] = None) -> None:
        """Set the replay entry point and the ledger used to detect superseded entries.

        Both are built after the recovery ledger, which the webhook queue needs.
        """
        self._replay = replay
        self._events = events

    def _backoff(self, attempts: int) -> timedelta:
        return timedelta(seconds=min(self._initial_delay * (2 ** max(attempts - 1, 0)), self._max_delay))

    # ── public API ─────────────────────────────────────────────────

    async def record_failed_operation(
        self,
        kind: str,
        payload: Dict[str, Any],
        error: BaseException,
        *,
        entity_id: str = "",
    ) -> FailedOperationEntry:
        if kind not in OPERATION_KINDS:
            raise ValueError(f"Unknown operation kind {kind!r}")
        entry = FailedOperationEntry(
            kind=kind,
            entity_id=entity_id,
            payload=payload,
            last_error=_error_text(error),
            next_retry_at=self._clock() + timedelta(seconds=self._initial_delay),
            failed_at=self._clock(),
        )
        await self._insert(entry)
        logger.warning(
            "RecoveryLedger: queued %s for %s (%s)", kind, entity_id or "?", entry.last_error,
            extra={"extra": {"operation_id": str(entry.id)}},
        )
        return entry

    async def run_scheduled_recovery(self) -> RecoveryReport:
        if self._replay is None:
            raise RuntimeError("RecoveryLedger.bind() must be called before recovery runs")
        due = await self._due(self._clock())
        recovered = rescheduled = abandoned = superseded = 0
        for entry in due:
            outcome = await self._retry(entry)
            if outcome == "recovered":
                recovered += 1
            elif outcome == "abandoned":
                abandoned += 1
            elif outcome == REPLAY_SUPERSEDED:
                superseded += 1
            else:
                rescheduled += 1
        if due:
            logger.info(
                "RecoveryLedger: %d due, %d recovered, %d rescheduled, %d abandoned, %d superseded",
                len(due), recovered, rescheduled, abandoned, superseded,
            )
        return RecoveryReport(len(due), recovered, rescheduled, abandoned, superseded)

    async def retry_operation(self, operation_id: uuid.UUID) -> str:
        """Manual replay regardless of next_retry_at. Abandoned entries get one more try."""
        if self._replay is None:
            raise RuntimeError("RecoveryLedger.bind() must be called before recovery runs")
        entry = await self._get(operation_id)
        if entry is None:
            raise NotFoundError("Failed operation not found", details={"id": str(operation_id)})
        return await self._retry(entry)

    async def list_operations(self, status: Optional[str] = None) -> List[FailedOperationEntry]:
        return await self._list(status)

    # ── internals ──────────────────────────────────────────────────

    async def _superseded(self, entry: FailedOperationEntry) -> bool:
        if self._events is None or not entry.entity_id or entry.failed_at is None:
            return False
        return await self._events.completed_since(entry.entity_id, entry.failed_at)

    async def _retry(self, entry: FailedOperationEntry) -> str:
        try:
            outcome = await self._replay(entry.payload, lambda: self._superseded(entry))
        except Exception as exc:
            return await self._record_failure(entry, exc)
        await self._remove(entry.id)
        if outcome == REPLAY_SUPERSEDED:
            await self._audit(AuditRecord(
                event_type=AuditEventType.RECOVERY_SUPERSEDED,
                description=f"Dropped {entry.kind} for {entry.entity_id}: a later event already completed",
                system_notes={"operation_id": str(entry.id), "failed_at": entry.failed_at.isoformat()},
            ))
            logger.info("RecoveryLedger: %s %s superseded, not replayed", entry.kind, entry.entity_id)
            return REPLAY_SUPERSEDED
        await self._audit(AuditRecord(
            event_type=AuditEventType.RECOVERY_SUCCEEDED,
            description=f"Recovered {entry.kind} for {entry.entity_id} after {entry.attempts + 1} attempt(s)",
            system_notes={"operation_id": str(entry.id)},
        ))
        logger.info("RecoveryLedger: recovered %s %s", entry.kind, entry.entity_id)
        return "recovered"

    async def _record_failure(self, entry: FailedOperationEntry, exc: BaseException) -> str:
        attempts = entry.attempts + 1
        if attempts >= self._max_attempts:
            updated = replace(entry, attempts=attempts, last_error=_error_text(exc), status="abandoned")
            await self._save(updated)
            await self._abandon(updated)
            return "abandoned"
        updated = replace(
            entry,
            attempts=attempts,
            last_error=_error_text(exc),
            status="pending",
            next_retry_at=self._clock() + self._backoff(attempts),
        )
        await self._save(updated)
        logger.warning(
            "RecoveryLedger: %s %s failed again (%d/%d): %s",
            entry.kind, entry.entity_id, attempts, self._max_attempts, updated.last_error,
        )
        return "rescheduled"

    async def _abandon(self, entry: FailedOperationEntry) -> None:
        description = (
            f"Abandoned {entry.kind} for {entry.entity_id} after {entry.attempts} attempts: {entry.last_error}"
        )
        logger.error("RecoveryLedger: %s", description)
        await self._audit(AuditRecord(
            event_type=AuditEventType.CRITICAL_ERROR,
            description=description,
            severity="critical",
            system_notes={"operation_id": str(entry.id), "payload": entry.payload},
        ))
        if self._recipients:
            sent = await self._notifier.send(
                list(self._recipients),
                f"[officesync] Operation abandoned: {entry.kind} {entry.entity_id}",
                f"<p>{description}</p>",
                description,
            )
            if not sent:
                logger.error("RecoveryLedger: alert for %s could not be delivered", entry.id)

    async def _audit(self, record: AuditRecord) -> None:
        try:
            await self._store.append_audit_entry(record)
        except Exception as exc:
            logger.error("RecoveryLedger: audit write failed: %s", exc)

    # ── storage ────────────────────────────────────────────────────

    @staticmethod
    def _from_row(row) -> FailedOperationEntry:
        return FailedOperationEntry(
            id=row.id,
            kind=row.kind,
            entity_id=row.entity_id,
            payload=row.payload,
            last_error=row.last_error,
            attempts=row.attempts,
            next_retry_at=row.next_retry_at,
            status=row.status,
            failed_at=row.failed_at,
        )

    async def _insert(self, entry: FailedOperationEntry) -> None:
        async with self._session_factory() as session:
            await FailedOperationRepository(session).create({
                "id": entry.id,
                "kind": entry.kind,
                "entity_id": entry.entity_id,
                "payload": entry.payload,
                "last_error": entry.last_error,
                "attempts": entry.attempts,
                "next_retry_at": entry.next_retry_at,
                "status": entry.status,
                "failed_at": entry.failed_at,
            })
            await session.commit()

    async def _due(self, now: datetime) -> List[FailedOperationEntry]:
        async with self._session_factory() as session:
            rows = await FailedOperationRepository(session).list_due(now)
            return [self._from_row(r) for r in rows]

    async def _get(self, operation_id: uuid.UUID) -> Optional[FailedOperationEntry]:
        async with self._session_factory() as session:
            row = await FailedOperationRepository(session).get_by_id(operation_id)
            return self._from_row(row) if row is not None else None

    async def _list(self, status: Optional[str]) -> List[FailedOperationEntry]:
        async with self._session_factory() as session:
            rows = await FailedOperationRepository(session).list_recent(status=status)
            return [self._from_row(r) for r in rows]

    async def _save(self, entry: FailedOperationEntry) -> None:
        async with self._session_factory() as session:
            await FailedOperationRepository(session).update(entry.id, {
                "attempts": entry.attempts,
                "last_error": entry.last_error,
                "next_retry_at": entry.next_retry_at,
                "status": entry.status,
            })
            await session.commit()

    async def _remove(self, operation_id: uuid.UUID) -> None:
        async with self._session_factory() as session:
            await FailedOperationRepository(session).delete(operation_id)
            await session.commit()


class InMemoryRecoveryLedger(RecoveryLedger):
    """Process-local recovery ledger for dry runs and tests."""

    def __init__(self, store: RecordStore, notifier: Notifier, **kwargs: Any) -> None:
        super().__init__(None, store, notifier, **kwargs)
        self.entries: Dict[uuid.UUID, FailedOperationEntry] = {}

    async def _insert(self, entry: FailedOperationEntry) -> None:
        self.entries[entry.id] = entry

    async def _due(self, now: datetime) -> List[FailedOperationEntry]:
        due = [e for e in self.entries.values() if e.status == "pending" and e.next_retry_at <= now]
        return sorted(due, key=lambda e: e.next_retry_at)

    async def _get(self, operation_id: uuid.UUID) -> Optional[FailedOperationEntry]:
        return self.entries.get(operation_id)

    async def _list(self, status: Optional[str]) -> List[FailedOperationEntry]:
        return [e for e in self.entries.values() if status is None or e.status == status]

    async def _save(self, entry: FailedOperationEntry) -> None:
        self.entries[entry.id] = entry

    async def _remove(self, operation_id: uuid.UUID) -> None:
        self.entries.pop(operation_id, None)
