"""Repositories for the officesync record store."""
from officesync.infra.database.repositories.appointment import AppointmentRepository
from officesync.infra.database.repositories.audit_entry import AuditEntryRepository
from officesync.infra.database.repositories.base import BaseRepository
from officesync.infra.database.repositories.failed_operation import FailedOperationRepository
from officesync.infra.database.repositories.scheduling_config import (
    ClientProfileRepository,
    ClinicianRepository,
    OfficeRepository,
)
from officesync.infra.database.repositories.webhook_event import WebhookEventRepository

__all__ = [
    "BaseRepository",
    "AppointmentRepository",
    "WebhookEventRepository",
    "FailedOperationRepository",
    "AuditEntryRepository",
    "OfficeRepository",
    "ClinicianRepository",
    "ClientProfileRepository",
]
