"""Unit tests for the recovery ledger (in-memory variant)."""
from __future__ import annotations

import asyncio
import unittest
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from officesync.core.exceptions import NotFoundError, TransientInfraError
from officesync.orchestrator.events import parse_event
from officesync.orchestrator.orchestrator import SyncOrchestrator
from officesync.orchestrator.rules.engine import compile_rules
from officesync.orchestrator.snapshot import ConfigSnapshot
from officesync.orchestrator.types import AuditEventType, OfficeInfo
from officesync.services.config_service import StaticConfigurationService
from officesync.services.deletion_verifier import DeletionVerifier
from officesync.services.idempotency_service import InMemoryIdempotencyLedger
from officesync.services.record_store import InMemoryRecordStore
from officesync.services.recovery_service import REPLAY_SUPERSEDED, InMemoryRecoveryLedger
from officesync.services.webhook_queue import EntityQueue

_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _run(coro):
    return asyncio.run(coro)


class _Clock:
    def __init__(self) -> None:
        self.now = _NOW

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class TestRecoveryLedger(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryRecordStore()
        self.notifier = MagicMock()
        self.notifier.send = AsyncMock(return_value=True)
        self.clock = _Clock()
        self.ledger = InMemoryRecoveryLedger(
            self.store,
            self.notifier,
            max_attempts=2,
            initial_delay_seconds=30,
            alert_recipients=("ops@example.com",),
            clock=self.clock,
        )
        self.replay = AsyncMock()
        self.ledger.bind(self.replay)
        self.payload = {"EventType": "AppointmentCreated", "Appointment": {"Id": "appt-1"}}

    def _record(self):
        return _run(self.ledger.record_failed_operation(
            "create", self.payload, TransientInfraError("db down"), entity_id="appt-1",
        ))

    def test_record_schedules_first_retry(self) -> None:
        entry = self._record()
        self.assertEqual(entry.status, "pending")
        self.assertEqual(entry.next_retry_at, _NOW + timedelta(seconds=30))
        self.assertEqual(entry.last_error, "TRANSIENT_INFRA_ERROR: db down")

    def test_unknown_kind_rejected(self) -> None:
        with self.assertRaises(ValueError):
            _run(self.ledger.record_failed_operation("upsert", {}, RuntimeError("x")))

    def test_not_due_is_skipped(self) -> None:
        self._record()
        report = _run(self.ledger.run_scheduled_recovery())
        self.assertEqual(report.attempted, 0)
        self.replay.assert_not_awaited()

    def test_due_entry_recovers(self) -> None:
        self._record()
        self.clock.advance(31)
        report = _run(self.ledger.run_scheduled_recovery())
        self.assertEqual((report.attempted, report.recovered), (1, 1))
        self.replay.assert_awaited_once()
        self.assertEqual(self.replay.await_args.args[0], self.payload)
        self.assertEqual(self.ledger.entries, {})
        self.assertEqual(self.store.audit[-1].event_type, AuditEventType.RECOVERY_SUCCEEDED)

    def test_failure_backs_off_then_abandons(self) -> None:
        entry = self._record()
        self.replay.side_effect = TransientInfraError("still down")

        self.clock.advance(31)
        report = _run(self.ledger.run_scheduled_recovery())
        self.assertEqual(report.rescheduled, 1)
        pending = self.ledger.entries[entry.id]
        self.assertEqual(pending.attempts, 1)
        self.assertEqual(pending.next_retry_at, self.clock.now + timedelta(seconds=30))

        self.clock.advance(31)
        report = _run(self.ledger.run_scheduled_recovery())
        self.assertEqual(report.abandoned, 1)
        abandoned = self.ledger.entries[entry.id]
        self.assertEqual(abandoned.status, "abandoned")
        self.assertEqual(self.store.audit[-1].event_type, AuditEventType.CRITICAL_ERROR)
        self.assertEqual(self.store.audit[-1].severity, "critical")
        self.notifier.send.assert_awaited_once()
        self.assertEqual(self.notifier.send.await_args.args[0], ["ops@example.com"])

        # abandoned entries are not picked up by the timer
        self.clock.advance(3600)
        self.assertEqual(_run(self.ledger.run_scheduled_recovery()).attempted, 0)

    def test_manual_retry_of_abandoned_entry(self) -> None:
        entry = self._record()
        self.ledger.entries[entry.id].status = "abandoned"
        outcome = _run(self.ledger.retry_operation(entry.id))
        self.assertEqual(outcome, "recovered")
        self.assertNotIn(entry.id, self.ledger.entries)

    def test_manual_retry_unknown_id(self) -> None:
        with self.assertRaises(NotFoundError):
            _run(self.ledger.retry_operation(uuid.uuid4()))

    def test_list_operations_filters_status(self) -> None:
        first = self._record()
        self._record()
        self.ledger.entries[first.id].status = "abandoned"
        self.assertEqual(len(_run(self.ledger.list_operations())), 2)
        self.assertEqual([e.id for e in _run(self.ledger.list_operations("abandoned"))], [first.id])

    def test_unbound_ledger_refuses_to_run(self) -> None:
        ledger = InMemoryRecoveryLedger(self.store, self.notifier)
        with self.assertRaises(RuntimeError):
            _run(ledger.run_scheduled_recovery())

    def test_record_stamps_failure_time(self) -> None:
        self.assertEqual(self._record().failed_at, _NOW)

    def test_superseded_entry_is_dropped(self) -> None:
        events = MagicMock()
        events.completed_since = AsyncMock(return_value=True)

        async def replay(payload, superseded):
            return REPLAY_SUPERSEDED if await superseded() else None

        self.ledger.bind(replay, events=events)
        entry = self._record()
        self.clock.advance(31)
        report = _run(self.ledger.run_scheduled_recovery())

        self.assertEqual((report.attempted, report.superseded, report.recovered), (1, 1, 0))
        events.completed_since.assert_awaited_once_with("appt-1", _NOW)
        self.assertNotIn(entry.id, self.ledger.entries)
        self.assertEqual(self.store.audit[-1].event_type, AuditEventType.RECOVERY_SUPERSEDED)

    def test_unreadable_event_ledger_reschedules(self) -> None:
        events = MagicMock()
        events.completed_since = AsyncMock(side_effect=TransientInfraError("ledger down"))

        async def replay(payload, superseded):
            await superseded()

        self.ledger.bind(replay, events=events)
        entry = self._record()
        self.clock.advance(31)
        report = _run(self.ledger.run_scheduled_recovery())

        self.assertEqual(report.rescheduled, 1)
        self.assertEqual(self.ledger.entries[entry.id].attempts, 1)


def _rule(name, kind, priority, condition="", office_ids=None, override_level="medium"):
    return SimpleNamespace(
        name=name, kind=kind, priority=priority, condition=condition,
        office_ids=office_ids or [], override_level=override_level, is_active=True,
    )


SNAPSHOT = ConfigSnapshot(
    offices=(OfficeInfo("B-2", order=0), OfficeInfo("B-3", order=1)),
    rules=compile_rules([_rule("Anything", "fallback", 5, "session_type:in-person|family|group")]),
)


def _payload(event_type: str) -> dict:
    return {
        "EventType": event_type,
        "ClientId": "client-1",
        "Appointment": {
            "Id": "appt-1",
            "ClientId": "client-1",
            "StartDateIso": "2026-03-02T15:00:00Z",
            "EndDateIso": "2026-03-02T15:50:00Z",
            "ServiceName": "Individual Therapy",
            "PractitionerId": "clin-1",
            "Status": "Confirmed",
            "DateCreated": 1767225600000,
        },
    }


class _FlakyStore(InMemoryRecordStore):
    def __init__(self) -> None:
        super().__init__()
        self.down = False

    async def upsert_appointment(self, record) -> None:
        if self.down:
            raise TransientInfraError("record store unavailable")
        await super().upsert_appointment(record)


class TestRecoveryReplayOrdering(unittest.TestCase):
    """Recovery replays go through the entity queue and respect later events."""

    def setUp(self) -> None:
        self.clock = _Clock()
        self.store = _FlakyStore()
        self.events = InMemoryIdempotencyLedger(clock=self.clock)
        self.orchestrator = SyncOrchestrator(
            self.store,
            self.events,
            StaticConfigurationService(SNAPSHOT),
            DeletionVerifier(self.store, retry_delay=0),
        )
        notifier = MagicMock()
        notifier.send = AsyncMock(return_value=True)
        self.recovery = InMemoryRecoveryLedger(self.store, notifier, initial_delay_seconds=30, clock=self.clock)

    async def _fail_created(self, queue: EntityQueue) -> None:
        self.recovery.bind(queue.replay, events=self.events)
        self.store.down = True
        queue.enqueue(parse_event(_payload("AppointmentCreated")))
        await queue.join()
        self.store.down = False

    def test_created_replay_after_cancel_is_dropped(self) -> None:
        async def scenario():
            queue = EntityQueue(self.orchestrator.handle, self.recovery, max_attempts=3, sleep=AsyncMock())
            await self._fail_created(queue)
            self.assertEqual(len(self.recovery.entries), 1)

            self.clock.advance(5)
            queue.enqueue(parse_event(_payload("AppointmentCancelled")))
            await queue.join()

            self.clock.advance(60)
            report = await self.recovery.run_scheduled_recovery()
            await queue.join()
            return queue, report

        queue, report = asyncio.run(scenario())
        self.assertEqual(report.superseded, 1)
        self.assertEqual(queue.stats.superseded, 1)
        self.assertNotIn("appt-1", self.store.records)
        self.assertEqual(self.recovery.entries, {})
        self.assertIn(AuditEventType.RECOVERY_SUPERSEDED, [a.event_type for a in self.store.audit])

    def test_created_replay_without_later_events_recovers(self) -> None:
        async def scenario():
            queue = EntityQueue(self.orchestrator.handle, self.recovery, max_attempts=3, sleep=AsyncMock())
            await self._fail_created(queue)
            self.clock.advance(60)
            report = await self.recovery.run_scheduled_recovery()
            await queue.join()
            return queue, report

        queue, report = asyncio.run(scenario())
        self.assertEqual(report.recovered, 1)
        self.assertEqual(queue.stats.replayed, 1)
        record = self.store.records["appt-1"]
        self.assertIn(record.assigned_office, ("B-2", "B-3"))
        self.assertFalse(record.needs_assignment)
        self.assertEqual(self.recovery.entries, {})
