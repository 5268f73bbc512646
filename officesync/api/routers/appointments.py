"""Appointments API: read-only view of one day's office assignments."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, HTTPException, Query, Request

from officesync.api.schemas.appointments import AppointmentResponse, DayScheduleResponse
from officesync.orchestrator.office_id import format_office_id
from officesync.orchestrator.types import AppointmentRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_response(record: AppointmentRecord) -> AppointmentResponse:
    return AppointmentResponse(
        appointment_id=record.appointment_id,
        client_id=record.client_id,
        client_name=record.client_name,
        clinician_id=record.clinician_id,
        clinician_name=record.clinician_name,
        start=record.start,
        end=record.end,
        session_type=record.session_type.value,
        status=record.status.value,
        service_name=record.service_name,
        assigned_office=record.assigned_office,
        office_label=format_office_id(record.assigned_office) if record.is_active else "",
        assignment_reason=record.assignment_reason,
        needs_assignment=record.needs_assignment,
        conflict_note=record.conflict_note,
        series_id=record.series_id,
        alternate_offices=list(record.alternate_offices),
    )


@router.get("", response_model=DayScheduleResponse)
async def list_day(
    request: Request,
    day: Optional[date] = Query(default=None, alias="date"),
    include_cancelled: bool = False,
):
    store = getattr(request.app.state, "record_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Record store not initialised")
    tz = ZoneInfo(request.app.state.sync_config.schedule_timezone)
    if day is None:
        day = datetime.now(timezone.utc).astimezone(tz).date()

    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    records = await store.list_appointments(start.astimezone(timezone.utc), end.astimezone(timezone.utc))
    if not include_cancelled:
        records = [r for r in records if r.is_active]
    records.sort(key=lambda r: (r.start, r.clinician_name, r.appointment_id))
    return DayScheduleResponse(
        date=day.isoformat(),
        count=len(records),
        needs_assignment=sum(1 for r in records if r.needs_assignment),
        appointments=[_to_response(r) for r in records],
    )
