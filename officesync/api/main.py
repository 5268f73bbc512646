"""officesync FastAPI application: entry point.

Start with:
    uvicorn officesync.api.main:app --host 0.0.0.0 --port 8000

Startup builds the whole pipeline once and parks it on ``app.state``:
record store, idempotency ledger, configuration snapshot, deletion verifier,
recovery ledger, sync orchestrator, per-entity webhook queue, resync service
and the background job scheduler. A broken rule table is a
ConfigurationError and stops startup.
"""
from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from officesync.api.routers.webhooks import limiter
from officesync.clients.notifier import build_notifier
from officesync.clients.provider import ProviderClient
from officesync.config.sync import load_notification_config, load_provider_config, load_sync_config
from officesync.core.logger import configure as configure_logging
from officesync.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from officesync.orchestrator.orchestrator import SyncOrchestrator
from officesync.services.config_service import ConfigurationService
from officesync.services.deletion_verifier import DeletionVerifier
from officesync.services.idempotency_service import IdempotencyLedger
from officesync.services.intake_form_service import IntakeFormService
from officesync.services.job_lock import AdvisoryJobLock
from officesync.services.record_store import SqlRecordStore
from officesync.services.recovery_service import RecoveryLedger
from officesync.services.resync_service import ResyncService
from officesync.services.scheduler import JobScheduler
from officesync.services.webhook_queue import EntityQueue

logger = logging.getLogger(__name__)

_SHUTDOWN_DRAIN_SECONDS = 10


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ──────────────────────────────────────────────────
    configure_logging()
    sync_config = load_sync_config()

    await ensure_database_exists()
    engine = build_engine()
    session_factory = build_session_factory(engine)
    await init_db()

    store = SqlRecordStore(session_factory, timeout=sync_config.operation_timeout)
    config_service = ConfigurationService(session_factory, refresh_seconds=sync_config.config_refresh_seconds)
    await config_service.snapshot()

    provider = ProviderClient(load_provider_config())
    recovery = RecoveryLedger(
        session_factory,
        store,
        build_notifier(load_notification_config()),
        max_attempts=sync_config.recovery_max_attempts,
        initial_delay_seconds=sync_config.recovery_initial_delay_seconds,
        alert_recipients=sync_config.alert_recipients,
    )
    events = IdempotencyLedger(session_factory)
    orchestrator = SyncOrchestrator(
        store,
        events,
        config_service,
        DeletionVerifier(store, retry_budget=sync_config.deletion_retry_budget),
        intake_service=IntakeFormService(provider, config_service, store, session_factory),
        timezone_name=sync_config.schedule_timezone,
        max_occurrences=sync_config.recurrence_max_occurrences,
    )
    queue = EntityQueue(
        orchestrator.handle,
        recovery,
        max_per_entity=sync_config.queue_max_per_entity,
        max_attempts=sync_config.retry_max_attempts,
        base_delay=sync_config.retry_base_delay,
        max_delay=sync_config.retry_max_delay,
    )
    recovery.bind(queue.replay, events=events)
    resync = ResyncService(provider, orchestrator, store)
    scheduler = JobScheduler(sync_config, recovery, resync, AdvisoryJobLock(engine))
    scheduler.start()

    app.state.sync_config = sync_config
    app.state.session_factory = session_factory
    app.state.record_store = store
    app.state.config_service = config_service
    app.state.orchestrator = orchestrator
    app.state.recovery_ledger = recovery
    app.state.webhook_queue = queue
    app.state.resync_service = resync
    app.state.scheduler = scheduler
    logger.info("API: sync pipeline ready")

    yield

    # ── Shutdown ─────────────────────────────────────────────────
    await scheduler.stop()
    try:
        await asyncio.wait_for(queue.join(), timeout=_SHUTDOWN_DRAIN_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("API: %d entity queues still busy at shutdown", queue.active_entities)
        await queue.shutdown()
    await close_engine()
    logger.info("API: engine disposed")


app = FastAPI(
    title="officesync API",
    version="1.0.0",
    description="Therapy-office assignment and scheduling-provider webhook sync.",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

_allowed_origins = os.environ.get(
    "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Optional API key authentication ──────────────────────────────
# Set ADMIN_API_KEY env var to protect all /api/v1/* endpoints.
# Requests must then include the header:  X-Api-Key: <value>
# If ADMIN_API_KEY is not set the check is skipped (dev/open mode).
_ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY", "").strip() or None


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if _ADMIN_API_KEY and request.url.path.startswith("/api/v1"):
        if request.headers.get("X-Api-Key") != _ADMIN_API_KEY:
            return JSONResponse(
                status_code=401,
                content={"detail": "Unauthorized: set X-Api-Key header"},
            )
    return await call_next(request)


# ── Routers ───────────────────────────────────────────────────────
from officesync.api.routers import appointments, maintenance, rules, webhooks  # noqa: E402

app.include_router(maintenance.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(rules.router, prefix="/api/v1")
app.include_router(webhooks.router)  # No /api/v1/ prefix: authenticated by signature


@app.get("/health", tags=["health"])
async def health(request: Request):
    queue = getattr(request.app.state, "webhook_queue", None)
    return {
        "status": "ok",
        "active_entities": queue.active_entities if queue is not None else 0,
    }
