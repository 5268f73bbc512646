"""Unit tests for EntityQueue ordering, back-pressure, retries and escalation."""
from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from officesync.core.exceptions import TransientInfraError, ValidationError
from officesync.orchestrator.events import parse_event
from officesync.services.recovery_service import REPLAY_SUPERSEDED
from officesync.services.webhook_queue import EntityQueue


def _event(appointment_id="appt-1", event_type="AppointmentCreated", minute=0):
    return parse_event({
        "EventType": event_type,
        "ClientId": "client-1",
        "Appointment": {
            "Id": appointment_id,
            "StartDateIso": f"2026-03-02T15:{minute:02d}:00Z",
            "EndDateIso": "2026-03-02T16:50:00Z",
        },
    })


def _recovery():
    recovery = MagicMock()
    recovery.record_failed_operation = AsyncMock()
    return recovery


class TestEntityQueue(unittest.TestCase):
    def test_events_for_one_entity_run_in_order(self) -> None:
        seen = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append((event.entity_id, event.appointment.start.minute))

        async def scenario():
            queue = EntityQueue(handler, _recovery())
            for minute in (0, 10, 20):
                queue.enqueue(_event(minute=minute))
            queue.enqueue(_event("appt-2"))
            await queue.join()
            return queue

        queue = asyncio.run(scenario())
        self.assertEqual([m for key, m in seen if key == "appt-1"], [0, 10, 20])
        self.assertIn(("appt-2", 0), seen)
        self.assertEqual(queue.stats.processed, 4)
        self.assertEqual(queue.active_entities, 0)

    def test_full_queue_drops_oldest(self) -> None:
        seen = []

        async def handler(event):
            seen.append(event.appointment.start.minute)

        async def scenario():
            queue = EntityQueue(handler, _recovery(), max_per_entity=2)
            for minute in (0, 10, 20):
                queue.enqueue(_event(minute=minute))
            self.assertEqual(queue.pending("appt-1"), 2)
            await queue.join()
            return queue

        queue = asyncio.run(scenario())
        self.assertEqual(seen, [10, 20])
        self.assertEqual(queue.stats.dropped, 1)

    def test_transient_failure_retries_then_escalates(self) -> None:
        handler = AsyncMock(side_effect=TransientInfraError("db down"))
        recovery = _recovery()
        sleep = AsyncMock()
        event = _event()

        async def scenario():
            queue = EntityQueue(handler, recovery, max_attempts=3, base_delay=1.0, max_delay=4.0, sleep=sleep)
            queue.enqueue(event)
            await queue.join()
            return queue

        queue = asyncio.run(scenario())
        self.assertEqual(handler.await_count, 3)
        self.assertEqual([c.args[0] for c in sleep.await_args_list], [1.0, 2.0])
        self.assertEqual(queue.stats.retried, 2)
        self.assertEqual(queue.stats.escalated, 1)
        recovery.record_failed_operation.assert_awaited_once()
        call = recovery.record_failed_operation.await_args
        self.assertEqual(call.args[0], "create")
        self.assertEqual(call.args[1], event.raw)
        self.assertEqual(call.kwargs["entity_id"], "appt-1")

    def test_transient_failure_then_success(self) -> None:
        handler = AsyncMock(side_effect=[ConnectionError("reset"), None])
        recovery = _recovery()

        async def scenario():
            queue = EntityQueue(handler, recovery, sleep=AsyncMock())
            queue.enqueue(_event(event_type="AppointmentCancelled"))
            await queue.join()
            return queue

        queue = asyncio.run(scenario())
        self.assertEqual(queue.stats.processed, 1)
        recovery.record_failed_operation.assert_not_awaited()

    def test_validation_error_is_terminal(self) -> None:
        handler = AsyncMock(side_effect=ValidationError("bad payload"))
        recovery = _recovery()

        async def scenario():
            queue = EntityQueue(handler, recovery, sleep=AsyncMock())
            queue.enqueue(_event())
            await queue.join()
            return queue

        queue = asyncio.run(scenario())
        self.assertEqual(handler.await_count, 1)
        self.assertEqual(queue.stats.rejected, 1)
        recovery.record_failed_operation.assert_not_awaited()

    def test_non_retryable_error_escalates_immediately(self) -> None:
        handler = AsyncMock(side_effect=RuntimeError("bug"))
        recovery = _recovery()
        sleep = AsyncMock()

        async def scenario():
            queue = EntityQueue(handler, recovery, sleep=sleep)
            queue.enqueue(_event(event_type="AppointmentDeleted"))
            await queue.join()

        asyncio.run(scenario())
        self.assertEqual(handler.await_count, 1)
        sleep.assert_not_awaited()
        self.assertEqual(recovery.record_failed_operation.await_args.args[0], "delete")

    def test_recovery_outage_is_logged_not_raised(self) -> None:
        recovery = _recovery()
        recovery.record_failed_operation.side_effect = ConnectionError("ledger down")

        async def scenario():
            queue = EntityQueue(AsyncMock(side_effect=RuntimeError("bug")), recovery)
            queue.enqueue(_event())
            await queue.join()
            return queue

        with self.assertLogs("officesync.services.webhook_queue", level="CRITICAL"):
            queue = asyncio.run(scenario())
        self.assertEqual(queue.stats.escalated, 1)


class TestReplay(unittest.TestCase):
    def test_replay_runs_behind_queued_events(self) -> None:
        seen = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append(event.appointment.start.minute)
            return event.appointment.start.minute

        async def scenario():
            queue = EntityQueue(handler, _recovery())
            queue.enqueue(_event(minute=0))
            replay = asyncio.create_task(queue.replay(_event(minute=10).raw))
            await asyncio.sleep(0)
            queue.enqueue(_event(minute=20))
            result = await replay
            await queue.join()
            return queue, result

        queue, result = asyncio.run(scenario())
        self.assertEqual(seen, [0, 10, 20])
        self.assertEqual(result, 10)
        self.assertEqual(queue.stats.replayed, 1)

    def test_superseded_check_runs_at_the_head_of_the_queue(self) -> None:
        seen = []
        checked_after = []

        async def handler(event):
            seen.append(event.kind)

        async def superseded():
            checked_after.append(list(seen))
            return True

        async def scenario():
            queue = EntityQueue(handler, _recovery())
            queue.enqueue(_event(event_type="AppointmentCancelled"))
            result = await queue.replay(_event().raw, superseded)
            await queue.join()
            return queue, result

        queue, result = asyncio.run(scenario())
        self.assertEqual(result, REPLAY_SUPERSEDED)
        self.assertEqual(checked_after, [["cancelled"]])
        self.assertEqual(seen, ["cancelled"])
        self.assertEqual(queue.stats.superseded, 1)

    def test_replay_failure_is_raised_not_escalated(self) -> None:
        recovery = _recovery()
        handler = AsyncMock(side_effect=TransientInfraError("db down"))

        async def scenario():
            queue = EntityQueue(handler, recovery, sleep=AsyncMock())
            try:
                await queue.replay(_event().raw)
            finally:
                await queue.join()

        with self.assertRaises(TransientInfraError):
            asyncio.run(scenario())
        self.assertEqual(handler.await_count, 1)
        recovery.record_failed_operation.assert_not_awaited()
