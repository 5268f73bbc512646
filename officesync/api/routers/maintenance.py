"""Maintenance API: recovery ledger inspection and replay, manual resync, audit log."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from officesync.api.dependencies import get_session
from officesync.api.schemas.maintenance import (
    AuditEntryResponse,
    FailedOperationResponse,
    RecoveryRunResponse,
    ResyncRequest,
    ResyncResponse,
    RetryResponse,
)
from officesync.core.exceptions import NotFoundError, ProjectError
from officesync.infra.database.repositories.audit_entry import AuditEntryRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])

_VALID_STATUSES = {"pending", "abandoned"}


def _service(request: Request, name: str):
    svc = getattr(request.app.state, name, None)
    if svc is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialised. Check server startup logs.",
        )
    return svc


@router.get("/failed-operations", response_model=List[FailedOperationResponse])
async def list_failed_operations(
    request: Request,
    status_filter: Optional[str] = Query(default=None, alias="status"),
):
    if status_filter is not None and status_filter not in _VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of {sorted(_VALID_STATUSES)}")
    recovery = _service(request, "recovery_ledger")
    entries = await recovery.list_operations(status_filter)
    return [FailedOperationResponse.model_validate(e) for e in entries]


@router.post("/failed-operations/{operation_id}/retry", response_model=RetryResponse)
async def retry_failed_operation(request: Request, operation_id: UUID):
    recovery = _service(request, "recovery_ledger")
    try:
        outcome = await recovery.retry_operation(operation_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    logger.info("maintenance: manual retry of %s -> %s", operation_id, outcome)
    return RetryResponse(id=operation_id, outcome=outcome)


@router.post("/recovery/run", response_model=RecoveryRunResponse)
async def run_recovery(request: Request):
    recovery = _service(request, "recovery_ledger")
    report = await recovery.run_scheduled_recovery()
    return RecoveryRunResponse.model_validate(report)


@router.post("/resync", response_model=ResyncResponse)
async def resync(request: Request, body: Optional[ResyncRequest] = None):
    resync_service = _service(request, "resync_service")
    day = body.date if body is not None and body.date is not None else None
    if day is None:
        tz = ZoneInfo(request.app.state.sync_config.schedule_timezone)
        day = datetime.now(timezone.utc).astimezone(tz).date()
    try:
        report = await resync_service.resync_day(day)
    except ProjectError as exc:
        raise HTTPException(status_code=exc.http_status, detail=exc.message)
    return ResyncResponse.model_validate(report)


@router.get("/audit", response_model=List[AuditEntryResponse])
async def list_audit_entries(
    event_type: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
):
    rows = await AuditEntryRepository(session).list_recent(event_type=event_type, limit=limit)
    return [AuditEntryResponse.model_validate(r) for r in rows]
