"""Pydantic v2 schemas for the maintenance API."""
from __future__ import annotations

from datetime import date, datetime
from datetime import date as Date
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class FailedOperationResponse(BaseModel):
    id: UUID
    kind: str
    entity_id: str
    status: str
    attempts: int
    last_error: str
    next_retry_at: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class RetryResponse(BaseModel):
    id: UUID
    outcome: str


class RecoveryRunResponse(BaseModel):
    attempted: int
    recovered: int
    rescheduled: int
    abandoned: int
    superseded: int = 0

    model_config = {"from_attributes": True}


class ResyncRequest(BaseModel):
    date: Optional[Date] = None


class ResyncResponse(BaseModel):
    day: date
    total: int
    processed: int
    errors: int

    model_config = {"from_attributes": True}


class AuditEntryResponse(BaseModel):
    id: UUID
    timestamp: datetime
    event_type: str
    description: str
    actor: str
    severity: str
    previous_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    system_notes: Optional[Dict[str, Any]] = None

    model_config = {"from_attributes": True}
