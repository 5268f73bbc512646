"""Record store: where appointments, audit entries and remediation writes land.

``RecordStore`` is the seam the orchestrator, the deletion verifier and the
jobs talk to. ``SqlRecordStore`` is the PostgreSQL implementation;
``InMemoryRecordStore`` backs local dry runs and the test suite.

Every write is an upsert keyed by appointment id (last writer wins), so any
terminal effect can be applied more than once.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from officesync.core.exceptions import TransientInfraError
from officesync.infra.database.models.appointment import Appointment
from officesync.infra.database.repositories.appointment import AppointmentRepository
from officesync.infra.database.repositories.audit_entry import AuditEntryRepository
from officesync.orchestrator.types import (
    AppointmentRecord,
    AppointmentStatus,
    AuditRecord,
    OverrideLevel,
    SessionType,
)

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    async def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]: ...

    async def upsert_appointment(self, record: AppointmentRecord) -> None: ...

    async def delete_appointment(self, appointment_id: str) -> bool: ...

    async def list_appointments(self, start: datetime, end: datetime) -> List[AppointmentRecord]: ...

    async def list_series(self, series_id: str) -> List[AppointmentRecord]: ...

    async def append_audit_entry(self, entry: AuditRecord) -> None: ...

    # remediation primitives used by the deletion verifier
    async def clear_appointment(self, appointment_id: str) -> bool: ...

    async def purge_appointment(self, appointment_id: str) -> bool: ...

    async def purge_appointment_window(self, appointment_id: str, start: datetime, end: datetime) -> bool: ...


# ── ORM mapping ─────────────────────────────────────────────────────────────

def record_to_row(record: AppointmentRecord) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "appointment_id": record.appointment_id,
        "client_id": record.client_id,
        "client_name": record.client_name,
        "clinician_id": record.clinician_id,
        "clinician_name": record.clinician_name,
        "start_time": record.start,
        "end_time": record.end,
        "session_type": record.session_type.value,
        "status": record.status.value,
        "service_name": record.service_name,
        "location": record.location,
        "assigned_office": record.assigned_office,
        "assignment_reason": record.assignment_reason,
        "assignment_rule": record.assignment_rule,
        "assignment_priority": record.assignment_priority,
        "assignment_override": record.assignment_override.value,
        "alternate_offices": list(record.alternate_offices),
        "needs_assignment": record.needs_assignment,
        "conflict_note": record.conflict_note,
        "source": record.source,
        "series_id": record.series_id,
        "notes": record.notes,
        "tags": list(record.tags),
        "requirements": dict(record.requirements),
        "created_at": record.created_at or now,
        "last_modified": record.last_modified or now,
    }


def row_to_record(row: Appointment) -> AppointmentRecord:
    return AppointmentRecord(
        appointment_id=row.appointment_id,
        client_id=row.client_id,
        client_name=row.client_name,
        clinician_id=row.clinician_id,
        clinician_name=row.clinician_name,
        start=row.start_time,
        end=row.end_time,
        session_type=SessionType(row.session_type),
        status=AppointmentStatus(row.status),
        service_name=row.service_name,
        location=row.location,
        assigned_office=row.assigned_office,
        assignment_reason=row.assignment_reason,
        assignment_rule=row.assignment_rule,
        assignment_priority=row.assignment_priority,
        assignment_override=OverrideLevel(row.assignment_override),
        alternate_offices=tuple(row.alternate_offices or ()),
        needs_assignment=row.needs_assignment,
        conflict_note=row.conflict_note,
        source=row.source,
        series_id=row.series_id,
        notes=row.notes,
        tags=tuple(row.tags or ()),
        requirements=dict(row.requirements or {}),
        created_at=row.created_at,
        last_modified=row.last_modified,
    )


def record_snapshot(record: Optional[AppointmentRecord]) -> Optional[Dict[str, Any]]:
    """JSON-safe dict for audit previous/new values."""
    if record is None:
        return None
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
        elif hasattr(value, "value"):
            data[key] = value.value
        elif isinstance(value, tuple):
            data[key] = list(value)
    return data


# ── PostgreSQL ──────────────────────────────────────────────────────────────

class SqlRecordStore:
    """RecordStore over the ``appointments`` and ``audit_entries`` tables.

    Connection drops, pool timeouts and asyncio timeouts surface as
    TransientInfraError so the webhook queue retries them.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, timeout: float = 30.0) -> None:
        self._session_factory = session_factory
        self._timeout = timeout

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
                await session.commit()
        except (OperationalError, InterfaceError, asyncio.TimeoutError, OSError) as exc:
            raise TransientInfraError("Record store unavailable", cause=exc) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise TransientInfraError("Record store connection lost", cause=exc) from exc
            raise

    async def _run(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise TransientInfraError("Record store call timed out", cause=exc) from exc

    async def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        async def _op():
            async with self._session() as session:
                row = await AppointmentRepository(session).get_by_id(appointment_id)
                return row_to_record(row) if row is not None else None
        return await self._run(_op())

    async def upsert_appointment(self, record: AppointmentRecord) -> None:
        async def _op():
            async with self._session() as session:
                await AppointmentRepository(session).save(record.appointment_id, record_to_row(record))
        await self._run(_op())

    async def delete_appointment(self, appointment_id: str) -> bool:
        async def _op():
            async with self._session() as session:
                return await AppointmentRepository(session).delete(appointment_id)
        return await self._run(_op())

    async def list_appointments(self, start: datetime, end: datetime) -> List[AppointmentRecord]:
        async def _op():
            async with self._session() as session:
                rows = await AppointmentRepository(session).list_between(start, end)
                return [row_to_record(r) for r in rows]
        return await self._run(_op())

    async def list_series(self, series_id: str) -> List[AppointmentRecord]:
        async def _op():
            async with self._session() as session:
                rows = await AppointmentRepository(session).list_series(series_id)
                return [row_to_record(r) for r in rows]
        return await self._run(_op())

    async def append_audit_entry(self, entry: AuditRecord) -> None:
        async def _op():
            async with self._session() as session:
                await AuditEntryRepository(session).create({
                    "event_type": entry.event_type.value,
                    "description": entry.description,
                    "actor": entry.actor,
                    "severity": entry.severity,
                    "previous_value": entry.previous_value,
                    "new_value": entry.new_value,
                    "system_notes": entry.system_notes,
                })
        await self._run(_op())

    async def clear_appointment(self, appointment_id: str) -> bool:
        async def _op():
            async with self._session() as session:
                return await AppointmentRepository(session).clear_values(appointment_id) > 0
        return await self._run(_op())

    async def purge_appointment(self, appointment_id: str) -> bool:
        async def _op():
            async with self._session() as session:
                return await AppointmentRepository(session).delete_where_id(appointment_id) > 0
        return await self._run(_op())

    async def purge_appointment_window(self, appointment_id: str, start: datetime, end: datetime) -> bool:
        async def _op():
            async with self._session() as session:
                return await AppointmentRepository(session).delete_in_range(appointment_id, start, end) > 0
        return await self._run(_op())


# ── in-memory ───────────────────────────────────────────────────────────────

class InMemoryRecordStore:
    """Dict-backed RecordStore. Keeps every write in ``writes`` for inspection."""

    def __init__(self, records: Optional[List[AppointmentRecord]] = None) -> None:
        self.records: Dict[str, AppointmentRecord] = {r.appointment_id: r for r in records or ()}
        self.audit: List[AuditRecord] = []
        self.writes: List[str] = []

    async def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        return self.records.get(appointment_id)

    async def upsert_appointment(self, record: AppointmentRecord) -> None:
        self.writes.append(f"upsert:{record.appointment_id}")
        self.records[record.appointment_id] = record

    async def delete_appointment(self, appointment_id: str) -> bool:
        self.writes.append(f"delete:{appointment_id}")
        return self.records.pop(appointment_id, None) is not None

    async def list_appointments(self, start: datetime, end: datetime) -> List[AppointmentRecord]:
        found = [r for r in self.records.values() if r.start < end and r.end > start]
        return sorted(found, key=lambda r: (r.start, r.appointment_id))

    async def list_series(self, series_id: str) -> List[AppointmentRecord]:
        found = [r for r in self.records.values() if r.series_id == series_id]
        return sorted(found, key=lambda r: r.start)

    async def append_audit_entry(self, entry: AuditRecord) -> None:
        self.audit.append(entry)

    async def clear_appointment(self, appointment_id: str) -> bool:
        self.writes.append(f"clear:{appointment_id}")
        record = self.records.get(appointment_id)
        if record is None:
            return False
        self.records[appointment_id] = replace(
            record, status=AppointmentStatus.DELETED, assigned_office=None, needs_assignment=False,
        )
        return True

    async def purge_appointment(self, appointment_id: str) -> bool:
        self.writes.append(f"purge:{appointment_id}")
        return self.records.pop(appointment_id, None) is not None

    async def purge_appointment_window(self, appointment_id: str, start: datetime, end: datetime) -> bool:
        self.writes.append(f"purge_window:{appointment_id}")
        record = self.records.get(appointment_id)
        if record is None or not (start <= record.start < end):
            return False
        del self.records[appointment_id]
        return True
