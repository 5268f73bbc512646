"""ResyncService: reconcile one local day against the provider.

Every provider appointment on the day is replayed through the orchestrator
as a synthetic Created event with the idempotency ledger bypassed, so a
missed or mangled webhook is repaired by the next run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict

from officesync.core.exceptions import ProjectError
from officesync.orchestrator.types import AuditEventType, AuditRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResyncReport:
    day: date
    total: int = 0
    processed: int = 0
    errors: int = 0


class ResyncService:
    def __init__(self, provider, orchestrator, store) -> None:
        self._provider = provider
        self._orchestrator = orchestrator
        self._store = store

    async def resync_day(self, day: date) -> ResyncReport:
        try:
            appointments = await self._provider.get_appointments(day, day)
        except ProjectError as exc:
            logger.error("ResyncService: fetching %s failed: %s", day, exc.message)
            await self._audit(AuditRecord(
                event_type=AuditEventType.SYSTEM_ERROR,
                description=f"Provider refresh for {day.isoformat()} failed",
                severity="error",
                system_notes={"error": exc.to_dict()},
            ))
            raise

        processed = errors = 0
        for appointment in appointments:
            try:
                await self._orchestrator.process_payload(self._as_created(appointment), bypass_ledger=True)
                processed += 1
            except Exception as exc:
                errors += 1
                logger.warning(
                    "ResyncService: appointment %s failed: %s", appointment.get("Id", "?"), exc,
                )

        report = ResyncReport(day=day, total=len(appointments), processed=processed, errors=errors)
        logger.info(
            "ResyncService: %s done (%d total, %d processed, %d errors)",
            day, report.total, report.processed, report.errors,
        )
        await self._audit(AuditRecord(
            event_type=AuditEventType.DAILY_RESYNC,
            description=f"Provider refresh for {day.isoformat()} completed",
            severity="warning" if errors else "info",
            system_notes={"date": day.isoformat(), "total": report.total,
                          "processed": processed, "errors": errors},
        ))
        return report

    @staticmethod
    def _as_created(appointment: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "EventType": "AppointmentCreated",
            "ClientId": appointment.get("ClientId"),
            "Appointment": appointment,
        }

    async def _audit(self, record: AuditRecord) -> None:
        try:
            await self._store.append_audit_entry(record)
        except Exception as exc:
            logger.error("ResyncService: audit write failed: %s", exc)
