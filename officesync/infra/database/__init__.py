"""
officesync.infra.database – PostgreSQL async engine, session, models and repositories.

Public API
──────────
  build_engine, build_session_factory, get_db, init_db, close_engine
  Base and the ORM models
  BaseRepository and the per-table repositories
"""
from officesync.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    get_db,
    init_db,
)
from officesync.infra.database.models import (
    Appointment,
    AuditEntry,
    Base,
    ClientProfile,
    Clinician,
    FailedOperation,
    Office,
    WebhookEvent,
)
from officesync.infra.database.repositories import (
    AppointmentRepository,
    AuditEntryRepository,
    BaseRepository,
    ClientProfileRepository,
    ClinicianRepository,
    FailedOperationRepository,
    OfficeRepository,
    WebhookEventRepository,
)

__all__ = [
    "build_engine",
    "build_session_factory",
    "get_db",
    "init_db",
    "close_engine",
    "Base",
    "Appointment",
    "WebhookEvent",
    "FailedOperation",
    "AuditEntry",
    "Office",
    "Clinician",
    "ClientProfile",
    "BaseRepository",
    "AppointmentRepository",
    "WebhookEventRepository",
    "FailedOperationRepository",
    "AuditEntryRepository",
    "OfficeRepository",
    "ClinicianRepository",
    "ClientProfileRepository",
]
