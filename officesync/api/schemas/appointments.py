"""Pydantic v2 schemas for the appointments API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class AppointmentResponse(BaseModel):
    appointment_id: str
    client_id: str
    client_name: str
    clinician_id: str
    clinician_name: str
    start: datetime
    end: datetime
    session_type: str
    status: str
    service_name: str
    assigned_office: Optional[str] = None
    office_label: str = ""
    assignment_reason: str = ""
    needs_assignment: bool = False
    conflict_note: str = ""
    series_id: Optional[str] = None
    alternate_offices: List[str] = []


class DayScheduleResponse(BaseModel):
    date: str
    count: int
    needs_assignment: int
    appointments: List[AppointmentResponse]
