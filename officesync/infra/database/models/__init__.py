"""
officesync.infra.database.models – SQLAlchemy 2.0 ORM models.

Exports Base, mixins, and all model classes.
"""
from officesync.infra.database.models.appointment import Appointment
from officesync.infra.database.models.audit_entry import AuditEntry
from officesync.infra.database.models.base import Base, TimestampMixin, _uuid_pk
from officesync.infra.database.models.failed_operation import FailedOperation
from officesync.infra.database.models.scheduling_config import Clinician, ClientProfile, Office
from officesync.infra.database.models.webhook_event import WebhookEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "_uuid_pk",
    "Appointment",
    "WebhookEvent",
    "FailedOperation",
    "AuditEntry",
    "Office",
    "Clinician",
    "ClientProfile",
]
