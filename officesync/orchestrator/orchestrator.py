"""SyncOrchestrator: drives one provider event to a persisted outcome.

Appointment events walk a fixed sequence of stages:
  received -> normalized -> assigned -> conflict_checked -> persisted -> acknowledged
and any stage may end in ``failed``. Normalization errors are
ValidationError (terminal). Assignment and persistence errors are
TransientInfraError (retried by the webhook queue).

Cancel and delete prefer hard deletion through the DeletionVerifier, which
falls back to a readable ``cancelled`` record when deletion cannot be
confirmed. Cancelling something that is already gone is a successful no-op.
"""
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from officesync.core.exceptions import (
    ConfigurationError,
    ProjectError,
    TransientInfraError,
    UnresolvedAssignment,
)
from officesync.orchestrator.conflicts import ConflictResolver, Reassignment
from officesync.orchestrator.events import (
    AppointmentPayload,
    CancelledEvent,
    DeletedEvent,
    FormSubmittedEvent,
    ProviderEvent,
    RecurrencePattern,
    RescheduledEvent,
    UpdatedEvent,
    fingerprint,
    parse_event,
)
from officesync.orchestrator.office_id import is_unresolved, normalize_office_id
from officesync.orchestrator.snapshot import ConfigSnapshot
from officesync.orchestrator.types import (
    AppointmentRecord,
    AppointmentStatus,
    AuditEventType,
    AuditRecord,
    ClientInfo,
    EventStatus,
    SyncState,
)
from officesync.services.record_store import RecordStore, record_snapshot

if TYPE_CHECKING:
    from officesync.services.config_service import ConfigurationService
    from officesync.services.deletion_verifier import DeletionVerifier
    from officesync.services.idempotency_service import IdempotencyLedger
    from officesync.services.intake_form_service import IntakeFormService

logger = logging.getLogger(__name__)

_CANCELLED_STATUSES = frozenset({"cancelled", "canceled"})
_DELETED_STATUSES = frozenset({"deleted"})


@dataclass
class SyncResult:
    kind: str
    entity_id: str
    outcome: str
    """created | updated | unchanged | cancelled | deleted | degraded | noop |
    duplicate | profile_updated"""
    state: SyncState = SyncState.RECEIVED
    trace: List[SyncState] = field(default_factory=list)
    appointments: List[AppointmentRecord] = field(default_factory=list)
    reassignments: List[Reassignment] = field(default_factory=list)
    detail: str = ""

    def advance(self, state: SyncState) -> None:
        self.state = state
        self.trace.append(state)

    @property
    def appointment(self) -> Optional[AppointmentRecord]:
        return self.appointments[0] if self.appointments else None


def _age_on(birth: date, day: date) -> int:
    return day.year - birth.year - ((day.month, day.day) < (birth.month, birth.day))


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year, month = dt.year + month_index // 12, month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


class SyncOrchestrator:
    def __init__(
        self,
        store: RecordStore,
        ledger: "IdempotencyLedger",
        config_service: "ConfigurationService",
        deletion_verifier: "DeletionVerifier",
        *,
        intake_service: Optional["IntakeFormService"] = None,
        timezone_name: str = "America/Chicago",
        max_occurrences: int = 52,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._config = config_service
        self._verifier = deletion_verifier
        self._intake = intake_service
        self._tz = ZoneInfo(timezone_name)
        self._max_occurrences = max_occurrences
        self._clock = clock

    # ── entry points ───────────────────────────────────────────────

    async def process_payload(self, payload: Dict[str, Any], *, bypass_ledger: bool = True) -> SyncResult:
        """Parse and handle a raw provider payload outside the webhook queue (daily resync)."""
        return await self.handle(parse_event(payload), bypass_ledger=bypass_ledger)

    async def handle(self, event: ProviderEvent, *, bypass_ledger: bool = False) -> SyncResult:
        fp = fingerprint(event)
        if not bypass_ledger and await self._ledger.is_processed(fp):
            logger.info("SyncOrchestrator: duplicate %s for %s skipped", event.kind, event.entity_id)
            return SyncResult(event.kind, event.entity_id, "duplicate", detail=fp)

        await self._mark(fp, event, EventStatus.PROCESSING)
        try:
            result = await self._dispatch(event)
        except Exception as exc:
            await self._mark(fp, event, EventStatus.FAILED, detail=str(exc))
            raise
        await self._mark(fp, event, EventStatus.COMPLETED, detail=result.outcome)
        result.advance(SyncState.ACKNOWLEDGED)
        return result

    async def _mark(self, fp: str, event: ProviderEvent, status: EventStatus, detail: str = "") -> None:
        try:
            await self._ledger.mark_status(
                fp, status, detail, event_type=event.kind, entity_id=event.entity_id, payload=event.raw,
            )
        except TransientInfraError as exc:
            # Ledger is fail-open; every downstream write is an idempotent upsert.
            logger.warning("SyncOrchestrator: ledger write %s for %s failed: %s", status.value, fp, exc)

    async def _dispatch(self, event: ProviderEvent) -> SyncResult:
        if isinstance(event, FormSubmittedEvent):
            if self._intake is None:
                raise ConfigurationError("Intake form processing is not configured")
            result = SyncResult(event.kind, event.entity_id, "profile_updated", trace=[SyncState.RECEIVED])
            await self._intake.process(event)
            result.advance(SyncState.PERSISTED)
            return result

        status = event.appointment.status.lower()
        if isinstance(event, (CancelledEvent, DeletedEvent)) or status in _CANCELLED_STATUSES | _DELETED_STATUSES:
            return await self._remove(event)
        return await self._upsert(event)

    # ── create / update / reschedule ───────────────────────────────

    async def _upsert(self, event: ProviderEvent) -> SyncResult:
        payload: AppointmentPayload = event.appointment
        result = SyncResult(event.kind, event.entity_id, "created", trace=[SyncState.RECEIVED])

        existing = await self._store.get_appointment(payload.appointment_id)
        if existing is None and isinstance(event, (UpdatedEvent, RescheduledEvent)):
            logger.info("SyncOrchestrator: %s for unknown %s treated as create", event.kind, payload.appointment_id)

        snapshot = await self._config.snapshot()
        if payload.client_date_of_birth and snapshot.clients.get(payload.client_id) is None:
            snapshot = snapshot.with_client(ClientInfo(
                client_id=payload.client_id,
                name=payload.client_name,
                age=_age_on(payload.client_date_of_birth, payload.start.date()),
            ))

        occurrences = self._normalize(payload, existing)
        result.advance(SyncState.NORMALIZED)

        series_existing: Dict[str, AppointmentRecord] = {}
        # a series that shrank to one appointment still owns its old members
        for series_id in {occurrences[0].series_id, existing.series_id if existing is not None else None}:
            if series_id:
                series_existing.update({r.appointment_id: r for r in await self._store.list_series(series_id)})
        if existing is not None:
            series_existing.setdefault(existing.appointment_id, existing)

        assigned = [self._assign(snapshot, occ, series_existing.get(occ.appointment_id)) for occ in occurrences]
        result.advance(SyncState.ASSIGNED)

        final: List[AppointmentRecord] = []
        for record in assigned:
            record, reassigned = await self._resolve_conflicts(snapshot, record)
            final.append(record)
            result.reassignments.extend(reassigned)
        result.advance(SyncState.CONFLICT_CHECKED)

        for record in final:
            try:
                await self._store.upsert_appointment(record)
            except ProjectError:
                raise
            except Exception as exc:
                raise TransientInfraError("Persisting appointment failed", cause=exc,
                                          details={"appointment_id": record.appointment_id}) from exc
            before = series_existing.get(record.appointment_id)
            await self._audit(AuditRecord(
                event_type=AuditEventType.APPOINTMENT_CREATED if before is None else AuditEventType.APPOINTMENT_UPDATED,
                description=f"{record.appointment_id} -> {record.assigned_office} ({record.assignment_reason})",
                previous_value=record_snapshot(before),
                new_value=record_snapshot(record),
            ))
            if record.needs_assignment:
                await self._flag_unresolved(record)
        for change in result.reassignments:
            if change.appointment.appointment_id in {r.appointment_id for r in final}:
                continue
            await self._store.upsert_appointment(change.appointment)
            await self._audit(AuditRecord(
                event_type=AuditEventType.OFFICE_REASSIGNED,
                description=f"{change.appointment.appointment_id}: {change.reason}",
                system_notes={"previous_office": change.previous_office, "new_office": change.new_office},
            ))
            if change.appointment.needs_assignment:
                await self._flag_unresolved(change.appointment)

        surplus = [
            appt_id for appt_id in series_existing
            if appt_id not in {r.appointment_id for r in final}
        ]
        for appt_id in surplus:
            await self._verifier.ensure_deleted(appt_id)
        result.advance(SyncState.PERSISTED)

        result.appointments = final
        if existing is not None:
            unchanged = (
                len(final) == 1
                and final[0].assigned_office == existing.assigned_office
                and final[0].start == existing.start
                and final[0].end == existing.end
                and final[0].status == existing.status
            )
            result.outcome = "unchanged" if unchanged else "updated"
        return result

    def _normalize(self, payload: AppointmentPayload, existing: Optional[AppointmentRecord]) -> List[AppointmentRecord]:
        now = self._clock()
        status = AppointmentStatus.COMPLETED if payload.status.lower() == "completed" else AppointmentStatus.SCHEDULED
        base = AppointmentRecord(
            appointment_id=payload.appointment_id,
            client_id=payload.client_id,
            client_name=payload.client_name,
            clinician_id=payload.practitioner_id,
            clinician_name=payload.practitioner_name,
            start=payload.start,
            end=payload.end,
            session_type=payload.session_type,
            status=status,
            service_name=payload.service_name,
            location=payload.location,
            source="provider",
            series_id=f"series-{payload.appointment_id}" if payload.is_recurring else None,
            notes=payload.notes,
            tags=payload.tags,
            requirements=dict(existing.requirements) if existing else {},
            created_at=(existing.created_at if existing else None) or payload.date_created or now,
            last_modified=now,
        )
        if existing is not None:
            base = replace(
                base,
                assigned_office=normalize_office_id(existing.assigned_office) if existing.assigned_office else None,
                assignment_reason=existing.assignment_reason,
                assignment_rule=existing.assignment_rule,
                assignment_priority=existing.assignment_priority,
                assignment_override=existing.assignment_override,
                alternate_offices=existing.alternate_offices,
                needs_assignment=existing.needs_assignment,
                conflict_note=existing.conflict_note,
            )
        if payload.recurrence is None:
            return [base]
        return self._expand(base, payload.recurrence)

    def _expand(self, base: AppointmentRecord, pattern: RecurrencePattern) -> List[AppointmentRecord]:
        """Materialize a recurring series; the root keeps the provider id."""
        count = min(pattern.occurrences, self._max_occurrences)
        records: List[AppointmentRecord] = []
        for n in range(count):
            if pattern.frequency == "monthly":
                start = _add_months(base.start, n)
            else:
                step = 7 if pattern.frequency == "weekly" else 14
                start = base.start + timedelta(days=step * n)
            if pattern.end_date and start.date() > pattern.end_date:
                break
            end = start + (base.end - base.start)
            appt_id = base.appointment_id if n == 0 else f"{base.appointment_id}-r{n}"
            records.append(replace(base, appointment_id=appt_id, start=start, end=end))
        return records

    def _assign(
        self,
        snapshot: ConfigSnapshot,
        record: AppointmentRecord,
        previous: Optional[AppointmentRecord],
    ) -> AppointmentRecord:
        if previous is not None and not is_unresolved(previous.assigned_office):
            material_change = (
                previous.start != record.start
                or previous.end != record.end
                or previous.clinician_id != record.clinician_id
                or previous.session_type != record.session_type
                or previous.status != AppointmentStatus.SCHEDULED
            )
            if not material_change:
                return replace(
                    record,
                    assigned_office=previous.assigned_office,
                    assignment_reason=previous.assignment_reason,
                    assignment_rule=previous.assignment_rule,
                    assignment_priority=previous.assignment_priority,
                    assignment_override=previous.assignment_override,
                    alternate_offices=previous.alternate_offices,
                    needs_assignment=False,
                )
        try:
            assignment = snapshot.assign(record)
        except ProjectError:
            raise
        except Exception as exc:
            raise TransientInfraError(
                "Office assignment failed", details={"appointment_id": record.appointment_id}, cause=exc,
            ) from exc
        if not assignment.resolved:
            logger.warning("SyncOrchestrator: no office for %s, flagged for review", record.appointment_id)
        return replace(record.with_assignment(assignment), conflict_note="")

    def _day_bounds(self, instant: datetime) -> tuple:
        local_day = instant.astimezone(self._tz).date()
        start = datetime.combine(local_day, time.min, tzinfo=self._tz)
        end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=self._tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    async def _resolve_conflicts(
        self,
        snapshot: ConfigSnapshot,
        record: AppointmentRecord,
    ):
        day_start, day_end = self._day_bounds(record.start)
        day = [
            r for r in await self._store.list_appointments(day_start, day_end)
            if r.appointment_id != record.appointment_id
        ]
        day.append(record)
        changes = ConflictResolver(snapshot).resolve(day)
        for change in changes:
            if change.appointment.appointment_id == record.appointment_id:
                record = change.appointment
        return record, [c for c in changes if c.appointment.appointment_id != record.appointment_id]

    # ── cancel / delete ────────────────────────────────────────────

    async def _remove(self, event: Union[CancelledEvent, DeletedEvent, UpdatedEvent]) -> SyncResult:
        payload = event.appointment
        result = SyncResult(event.kind, event.entity_id, "noop", trace=[SyncState.RECEIVED])
        existing = await self._store.get_appointment(payload.appointment_id)
        result.advance(SyncState.NORMALIZED)
        if existing is None or existing.status == AppointmentStatus.DELETED:
            logger.info("SyncOrchestrator: %s for absent %s is a no-op", event.kind, payload.appointment_id)
            result.advance(SyncState.PERSISTED)
            return result

        targets = [existing]
        if existing.series_id and existing.series_id == f"series-{existing.appointment_id}":
            members = await self._store.list_series(existing.series_id)
            targets += [m for m in members if m.appointment_id != existing.appointment_id]

        degraded = False
        for target in targets:
            outcome = await self._verifier.ensure_deleted(target.appointment_id)
            if outcome.degraded:
                degraded = True
                logger.warning("SyncOrchestrator: %s kept as cancelled (deletion unconfirmed)", target.appointment_id)
                await self._audit(AuditRecord(
                    event_type=AuditEventType.DEGRADED_CANCELLATION,
                    description=f"{target.appointment_id}: deletion unconfirmed, marked cancelled",
                    severity="warning",
                    previous_value=record_snapshot(target),
                    system_notes={"strategies": [r.strategy for r in outcome.results]},
                ))
            else:
                await self._audit(AuditRecord(
                    event_type=(
                        AuditEventType.APPOINTMENT_DELETED if isinstance(event, DeletedEvent)
                        else AuditEventType.APPOINTMENT_CANCELLED
                    ),
                    description=f"{target.appointment_id} removed"
                                + (f": {payload.cancellation_reason}" if payload.cancellation_reason else ""),
                    previous_value=record_snapshot(target),
                ))
        result.appointments = targets
        result.outcome = "degraded" if degraded else ("deleted" if isinstance(event, DeletedEvent) else "cancelled")
        result.advance(SyncState.PERSISTED)
        return result

    async def _flag_unresolved(self, record: AppointmentRecord) -> None:
        err = UnresolvedAssignment(
            "No office available for appointment",
            details={"appointment_id": record.appointment_id, "reason": record.assignment_reason},
        )
        logger.warning("SyncOrchestrator: %s needs manual office assignment", record.appointment_id)
        await self._audit(AuditRecord(
            event_type=AuditEventType.ASSIGNMENT_UNRESOLVED,
            description=f"{record.appointment_id}: {err.message}",
            severity="warning",
            system_notes=err.to_dict(),
        ))

    async def _audit(self, record: AuditRecord) -> None:
        try:
            await self._store.append_audit_entry(record)
        except Exception as exc:
            logger.error("SyncOrchestrator: audit write failed (%s): %s", record.event_type.value, exc)
