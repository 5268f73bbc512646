"""
Integration tests for SyncOrchestrator over the in-memory store, ledger and
configuration service.
"""
from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timezone
from types import SimpleNamespace

from officesync.core.exceptions import ConfigurationError, TransientInfraError, ValidationError
from officesync.orchestrator.events import parse_event
from officesync.orchestrator.orchestrator import SyncOrchestrator
from officesync.orchestrator.rules.engine import compile_rules
from officesync.orchestrator.snapshot import ConfigSnapshot
from officesync.orchestrator.types import (
    AppointmentStatus,
    AuditEventType,
    ClientInfo,
    ClinicianInfo,
    OfficeInfo,
    SyncState,
)
from officesync.services.config_service import StaticConfigurationService
from officesync.services.deletion_verifier import DeletionVerifier
from officesync.services.idempotency_service import InMemoryIdempotencyLedger
from officesync.services.record_store import InMemoryRecordStore


def _run(coro):
    return asyncio.run(coro)


def _rule(name, kind, priority, condition="", office_ids=None, override_level="medium"):
    return SimpleNamespace(
        name=name, kind=kind, priority=priority, condition=condition,
        office_ids=office_ids or [], override_level=override_level, is_active=True,
    )


SNAPSHOT = ConfigSnapshot(
    offices=(
        OfficeInfo("B-2", order=0),
        OfficeInfo("B-4", order=1, is_accessible=True),
        OfficeInfo("B-5", order=2, is_accessible=True),
        OfficeInfo("A-v", order=3, is_virtual=True),
    ),
    clinicians={
        "clin-1": ClinicianInfo("clin-1", preferred_offices=("B-4",)),
        "clin-2": ClinicianInfo("clin-2", preferred_offices=("B-2",)),
    },
    clients={
        "mobility-client": ClientInfo(client_id="mobility-client", has_mobility_needs=True),
    },
    rules=compile_rules([
        _rule("Mobility needs", "accessibility", 90, "requires:mobility", ["B-4", "B-5"], "hard"),
        _rule("Clinician preferred", "clinician-preference", 62, "clinician_office:preferred;session_type:in-person"),
        _rule("Telehealth", "modality", 10, "session_type:telehealth", ["A-v"]),
        _rule("Anything", "fallback", 5, "session_type:in-person|family|group"),
    ]),
)


def _payload(appointment_id="appt-1", event_type="AppointmentCreated", client_id="client-1",
             start="2026-03-02T15:00:00Z", end="2026-03-02T15:50:00Z", practitioner="clin-9", **extra) -> dict:
    appointment = {
        "Id": appointment_id,
        "ClientId": client_id,
        "StartDateIso": start,
        "EndDateIso": end,
        "ServiceName": "Individual Therapy",
        "PractitionerId": practitioner,
        "Status": "Confirmed",
        "DateCreated": 1767225600000,
    }
    appointment.update(extra)
    return {"EventType": event_type, "ClientId": client_id, "Appointment": appointment}


class _UndeletableStore(InMemoryRecordStore):
    """Every removal primitive reports success but leaves the record in place."""

    async def delete_appointment(self, appointment_id):
        self.writes.append(f"delete:{appointment_id}")
        return True

    async def clear_appointment(self, appointment_id):
        self.writes.append(f"clear:{appointment_id}")
        return True

    async def purge_appointment(self, appointment_id):
        self.writes.append(f"purge:{appointment_id}")
        return True

    async def purge_appointment_window(self, appointment_id, start, end):
        self.writes.append(f"purge_window:{appointment_id}")
        return True


class _BrokenLedger(InMemoryIdempotencyLedger):
    async def _get_status(self, fingerprint):
        raise OSError("ledger unreachable")

    async def _write(self, *args):
        raise OSError("ledger unreachable")


class _SyncTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryRecordStore()
        self.ledger = InMemoryIdempotencyLedger()
        self.orchestrator = self._build(self.store, self.ledger)

    @staticmethod
    def _build(store, ledger, **kwargs) -> SyncOrchestrator:
        return SyncOrchestrator(
            store,
            ledger,
            StaticConfigurationService(SNAPSHOT),
            DeletionVerifier(store, retry_delay=0),
            **kwargs,
        )

    def _handle(self, payload: dict, orchestrator=None):
        return _run((orchestrator or self.orchestrator).handle(parse_event(payload)))

    def _audit_types(self, store=None):
        return [a.event_type for a in (store or self.store).audit]


class TestCreate(_SyncTestCase):
    def test_create_assigns_and_persists(self) -> None:
        result = self._handle(_payload())
        self.assertEqual(result.outcome, "created")
        self.assertEqual(result.state, SyncState.ACKNOWLEDGED)
        self.assertEqual(
            result.trace,
            [SyncState.RECEIVED, SyncState.NORMALIZED, SyncState.ASSIGNED,
             SyncState.CONFLICT_CHECKED, SyncState.PERSISTED, SyncState.ACKNOWLEDGED],
        )
        record = self.store.records["appt-1"]
        self.assertEqual(record.assigned_office, "B-2")
        self.assertEqual(record.assignment_rule, "Anything")
        self.assertIn(AuditEventType.APPOINTMENT_CREATED, self._audit_types())

    def test_duplicate_delivery_has_one_effect(self) -> None:
        first = self._handle(_payload())
        second = self._handle(_payload())
        self.assertEqual(first.outcome, "created")
        self.assertEqual(second.outcome, "duplicate")
        self.assertEqual(len(self.store.records), 1)
        self.assertEqual(self.store.writes.count("upsert:appt-1"), 1)

    def test_mobility_beats_clinician_preference(self) -> None:
        self._handle(_payload(client_id="mobility-client", practitioner="clin-2"))
        record = self.store.records["appt-1"]
        self.assertEqual(record.assigned_office, "B-4")
        self.assertEqual(record.assignment_rule, "Mobility needs")

    def test_telehealth_goes_virtual(self) -> None:
        self._handle(_payload(ServiceName="Telehealth Session"))
        self.assertEqual(self.store.records["appt-1"].assigned_office, "A-v")

    def test_update_for_unknown_id_creates(self) -> None:
        result = self._handle(_payload(event_type="AppointmentUpdated"))
        self.assertEqual(result.outcome, "created")
        self.assertIn("appt-1", self.store.records)

    def test_update_without_material_change_keeps_office(self) -> None:
        self._handle(_payload(practitioner="clin-1"))
        self.assertEqual(self.store.records["appt-1"].assigned_office, "B-4")
        result = self._handle(_payload(event_type="AppointmentUpdated", practitioner="clin-1", Notes="bring forms"))
        self.assertEqual(result.outcome, "unchanged")
        self.assertEqual(self.store.records["appt-1"].notes, "bring forms")

    def test_reschedule_updates_times(self) -> None:
        self._handle(_payload())
        result = self._handle(_payload(
            event_type="AppointmentRescheduled", start="2026-03-02T17:00:00Z", end="2026-03-02T17:50:00Z",
        ))
        self.assertEqual(result.outcome, "updated")
        self.assertEqual(self.store.records["appt-1"].start, datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc))
        self.assertIn(AuditEventType.APPOINTMENT_UPDATED, self._audit_types())

    def test_date_of_birth_sets_age(self) -> None:
        snapshot = ConfigSnapshot(
            offices=(OfficeInfo("B-2", order=0), OfficeInfo("C-1", order=1, age_groups=("children",))),
            rules=compile_rules([
                _rule("Children", "age-band", 80, "age_max:12;session_type:in-person|family"),
                _rule("Anything", "fallback", 5, "session_type:in-person|family|group"),
            ]),
        )
        orchestrator = SyncOrchestrator(
            self.store, self.ledger, StaticConfigurationService(snapshot), DeletionVerifier(self.store, retry_delay=0),
        )
        self._handle(_payload(ClientDateOfBirth="2018-06-01"), orchestrator)
        self.assertEqual(self.store.records["appt-1"].assigned_office, "C-1")

    def test_no_matching_rule_flags_for_review(self) -> None:
        snapshot = ConfigSnapshot(
            offices=(OfficeInfo("B-2", order=0), OfficeInfo("A-v", order=1, is_virtual=True)),
            rules=compile_rules([_rule("Telehealth", "modality", 10, "session_type:telehealth", ["A-v"])]),
        )
        orchestrator = SyncOrchestrator(
            self.store, self.ledger, StaticConfigurationService(snapshot), DeletionVerifier(self.store, retry_delay=0),
        )
        self._handle(_payload(), orchestrator)

        record = self.store.records["appt-1"]
        self.assertEqual(record.assigned_office, "TBD")
        self.assertTrue(record.needs_assignment)
        flagged = [a for a in self.store.audit if a.event_type == AuditEventType.ASSIGNMENT_UNRESOLVED]
        self.assertEqual(len(flagged), 1)
        self.assertEqual(flagged[0].severity, "warning")
        self.assertEqual(flagged[0].system_notes["code"], "UNRESOLVED_ASSIGNMENT")
        self.assertEqual(flagged[0].system_notes["details"]["appointment_id"], "appt-1")


class TestConflicts(_SyncTestCase):
    def test_overlap_moves_lower_priority_appointment(self) -> None:
        # clinician preference puts appt-2 in B-4 first
        self._handle(_payload("appt-2", practitioner="clin-1",
                              start="2026-03-02T15:30:00Z", end="2026-03-02T16:20:00Z"))
        self.assertEqual(self.store.records["appt-2"].assigned_office, "B-4")

        result = self._handle(_payload("appt-1", client_id="mobility-client"))

        self.assertEqual(self.store.records["appt-1"].assigned_office, "B-4")
        moved = self.store.records["appt-2"]
        self.assertNotIn(moved.assigned_office, ("B-4", "TBD"))
        self.assertFalse(moved.needs_assignment)
        self.assertIn("appt-1", moved.conflict_note)
        self.assertEqual([r.appointment.appointment_id for r in result.reassignments], ["appt-2"])
        self.assertIn(AuditEventType.OFFICE_REASSIGNED, self._audit_types())

    def test_back_to_back_is_not_a_conflict(self) -> None:
        self._handle(_payload("appt-1", practitioner="clin-1"))
        self._handle(_payload("appt-2", practitioner="clin-1",
                              start="2026-03-02T15:50:00Z", end="2026-03-02T16:40:00Z"))
        self.assertEqual(self.store.records["appt-1"].assigned_office, "B-4")
        self.assertEqual(self.store.records["appt-2"].assigned_office, "B-4")


class TestRemove(_SyncTestCase):
    def test_cancel_of_absent_appointment_is_noop(self) -> None:
        result = self._handle(_payload("ghost", event_type="AppointmentCancelled"))
        self.assertEqual(result.outcome, "noop")
        self.assertEqual(self.store.writes, [])
        self.assertEqual(self.store.audit, [])

    def test_cancel_deletes_record(self) -> None:
        self._handle(_payload())
        result = self._handle(_payload(event_type="AppointmentCancelled", CancellationReason="client ill"))
        self.assertEqual(result.outcome, "cancelled")
        self.assertNotIn("appt-1", self.store.records)
        self.assertIn(AuditEventType.APPOINTMENT_CANCELLED, self._audit_types())

    def test_updated_with_cancelled_status_removes(self) -> None:
        self._handle(_payload())
        result = self._handle(_payload(event_type="AppointmentUpdated", Status="Cancelled"))
        self.assertEqual(result.outcome, "cancelled")
        self.assertNotIn("appt-1", self.store.records)

    def test_unconfirmed_delete_degrades_to_cancelled(self) -> None:
        store = _UndeletableStore()
        orchestrator = self._build(store, InMemoryIdempotencyLedger())
        self._handle(_payload(), orchestrator)

        result = self._handle(_payload(event_type="AppointmentDeleted"), orchestrator)

        self.assertEqual(result.outcome, "degraded")
        record = store.records["appt-1"]
        self.assertEqual(record.status, AppointmentStatus.CANCELLED)
        self.assertIsNone(record.assigned_office)
        self.assertEqual(store.writes.count("delete:appt-1"), 3)
        self.assertIn(AuditEventType.DEGRADED_CANCELLATION, self._audit_types(store))


class TestRecurrence(_SyncTestCase):
    def test_weekly_series_expands_and_cancels_together(self) -> None:
        result = self._handle(_payload(RecurrencePattern={"frequency": "weekly", "occurrences": 3}))
        self.assertEqual(
            [r.appointment_id for r in result.appointments], ["appt-1", "appt-1-r1", "appt-1-r2"],
        )
        third = self.store.records["appt-1-r2"]
        self.assertEqual(third.start, datetime(2026, 3, 16, 15, 0, tzinfo=timezone.utc))
        self.assertEqual(third.series_id, "series-appt-1")

        self._handle(_payload(event_type="AppointmentCancelled"))
        self.assertEqual(self.store.records, {})

    def test_shorter_series_removes_surplus(self) -> None:
        self._handle(_payload(RecurrencePattern={"frequency": "weekly", "occurrences": 3}))
        self._handle(_payload(event_type="AppointmentUpdated",
                              RecurrencePattern={"frequency": "weekly", "occurrences": 2}))
        self.assertEqual(sorted(self.store.records), ["appt-1", "appt-1-r1"])

    def test_series_collapsed_to_single_removes_members(self) -> None:
        self._handle(_payload(RecurrencePattern={"frequency": "weekly", "occurrences": 3}))
        result = self._handle(_payload(event_type="AppointmentUpdated", ServiceName="Family Therapy"))

        self.assertEqual(list(self.store.records), ["appt-1"])
        self.assertIsNone(self.store.records["appt-1"].series_id)
        self.assertEqual([r.appointment_id for r in result.appointments], ["appt-1"])

    def test_monthly_clamps_to_month_end(self) -> None:
        result = self._handle(_payload(
            start="2026-01-31T15:00:00Z", end="2026-01-31T15:50:00Z",
            RecurrencePattern={"frequency": "monthly", "occurrences": 2},
        ))
        self.assertEqual(result.appointments[1].start, datetime(2026, 2, 28, 15, 0, tzinfo=timezone.utc))


class TestLedgerAndErrors(_SyncTestCase):
    def test_ledger_outage_fails_open(self) -> None:
        orchestrator = self._build(self.store, _BrokenLedger())
        result = self._handle(_payload(), orchestrator)
        self.assertEqual(result.outcome, "created")
        again = self._handle(_payload(), orchestrator)
        self.assertEqual(again.outcome, "unchanged")
        self.assertEqual(len(self.store.records), 1)

    def test_failed_event_is_marked_failed_and_reraised(self) -> None:
        class _FailingStore(InMemoryRecordStore):
            async def upsert_appointment(self, record):
                raise ConnectionError("db down")

        orchestrator = self._build(_FailingStore(), self.ledger)
        with self.assertRaises(TransientInfraError):
            self._handle(_payload(), orchestrator)
        self.assertEqual([status for status, _ in self.ledger.entries.values()], ["failed"])

    def test_form_without_intake_service(self) -> None:
        with self.assertRaises(ConfigurationError):
            self._handle({"Type": "FormSubmitted", "ClientId": "client-1", "IntakeId": "f-1"})

    def test_process_payload_rejects_garbage(self) -> None:
        with self.assertRaises(ValidationError):
            _run(self.orchestrator.process_payload({"EventType": "AppointmentCreated"}))
