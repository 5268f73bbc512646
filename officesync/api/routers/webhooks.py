"""Public webhook endpoint for the scheduling provider.

This route lives under /webhooks/ (NOT /api/v1/) so it is excluded from the
admin API-key middleware; the provider authenticates with an HMAC signature
over the raw body instead.

The event is parsed and validated inline, then handed to the per-entity
queue, so the handler returns 202 before any processing happens. The receipt
audit entry is written as a response background task.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from officesync.core.exceptions import ValidationError
from officesync.orchestrator.events import ProviderEvent, parse_event
from officesync.orchestrator.types import AuditEventType, AuditRecord
from officesync.services.webhook_signature import SIGNATURE_HEADER, verify_signature

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])
limiter = Limiter(key_func=get_remote_address)


def _webhook_rate_limit() -> str:
    return os.environ.get("WEBHOOK_RATE_LIMIT", "120/minute")


async def _record_receipt(store: Any, event: ProviderEvent) -> None:
    try:
        await store.append_audit_entry(AuditRecord(
            event_type=AuditEventType.WEBHOOK_RECEIVED,
            description=f"{event.kind} for {event.entity_id}",
            system_notes={"client_id": event.client_id},
        ))
    except Exception as exc:
        logger.error("webhooks: receipt audit failed for %s: %s", event.entity_id, exc)


@router.post("/scheduling", status_code=202)
@limiter.limit(_webhook_rate_limit)
async def scheduling_inbound(request: Request, background_tasks: BackgroundTasks):
    """Receive appointment and intake-form events from the scheduling provider."""
    config = request.app.state.sync_config
    body = await request.body()

    if config.signature_required and not verify_signature(
        body, config.webhook_secret, request.headers.get(SIGNATURE_HEADER),
    ):
        logger.warning("webhooks: rejected request with missing or invalid signature")
        return JSONResponse(status_code=401, content={"detail": "Invalid webhook signature"})

    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"detail": "Body is not valid JSON"})

    try:
        event = parse_event(payload)
    except ValidationError as exc:
        logger.warning("webhooks: rejected payload: %s", exc.message, extra={"extra": exc.details})
        return JSONResponse(status_code=400, content={"detail": exc.message, "code": exc.code})

    request.app.state.webhook_queue.enqueue(event)
    store = getattr(request.app.state, "record_store", None)
    if store is not None:
        background_tasks.add_task(_record_receipt, store, event)

    logger.info("webhooks: accepted %s for %s", event.kind, event.entity_id)
    return JSONResponse(
        status_code=202,
        content={"accepted": True, "event_type": event.kind, "entity_id": event.entity_id},
    )
