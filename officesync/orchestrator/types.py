"""Core data structures for the sync orchestrator and the assignment engine."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

UNRESOLVED_OFFICE = "TBD"
VIRTUAL_OFFICE = "A-v"


class SessionType(str, Enum):
    IN_PERSON = "in-person"
    TELEHEALTH = "telehealth"
    GROUP = "group"
    FAMILY = "family"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DELETED = "deleted"


class OverrideLevel(str, Enum):
    """How strongly a matched rule binds the office choice."""
    HARD = "hard"
    MEDIUM = "medium"
    SOFT = "soft"
    NONE = "none"


class RuleKind(str, Enum):
    CLIENT_OVERRIDE = "client-override"
    ACCESSIBILITY = "accessibility"
    AGE_BAND = "age-band"
    CLINICIAN_PREFERENCE = "clinician-preference"
    MODALITY = "modality"
    FEATURE_MATCH = "feature-match"
    FALLBACK = "fallback"


class SyncState(str, Enum):
    """Stages an event passes through inside the orchestrator."""
    RECEIVED = "received"
    NORMALIZED = "normalized"
    ASSIGNED = "assigned"
    CONFLICT_CHECKED = "conflict_checked"
    PERSISTED = "persisted"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"


class EventStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Assignment:
    """Outcome of one engine run."""
    office_id: str
    reason: str
    priority: int = 0
    rule_name: str = ""
    override: OverrideLevel = OverrideLevel.NONE
    alternates: Tuple[str, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.office_id != UNRESOLVED_OFFICE

    @classmethod
    def unresolved(cls, reason: str = "No matching rule") -> "Assignment":
        return cls(office_id=UNRESOLVED_OFFICE, reason=reason)


@dataclass
class AppointmentRecord:
    """An appointment as the pipeline sees it, independent of storage."""

    appointment_id: str
    client_id: str
    start: datetime
    end: datetime
    client_name: str = ""
    clinician_id: str = ""
    clinician_name: str = ""
    session_type: SessionType = SessionType.IN_PERSON
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    service_name: str = ""
    location: str = ""
    assigned_office: Optional[str] = None
    assignment_reason: str = ""
    assignment_rule: str = ""
    assignment_priority: int = 0
    assignment_override: OverrideLevel = OverrideLevel.NONE
    alternate_offices: Tuple[str, ...] = ()
    needs_assignment: bool = False
    conflict_note: str = ""
    source: str = "provider"
    series_id: Optional[str] = None
    notes: str = ""
    tags: Tuple[str, ...] = ()
    requirements: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == AppointmentStatus.SCHEDULED

    def with_assignment(self, assignment: Assignment) -> "AppointmentRecord":
        return replace(
            self,
            assigned_office=assignment.office_id,
            assignment_reason=assignment.reason,
            assignment_rule=assignment.rule_name,
            assignment_priority=assignment.priority,
            assignment_override=assignment.override,
            alternate_offices=assignment.alternates,
            needs_assignment=not assignment.resolved,
        )


@dataclass(frozen=True)
class OfficeInfo:
    office_id: str
    name: str = ""
    in_service: bool = True
    is_accessible: bool = False
    is_virtual: bool = False
    floor: str = ""
    size: str = "medium"
    age_groups: Tuple[str, ...] = ()
    features: Tuple[str, ...] = ()
    primary_clinician: Optional[str] = None
    alternate_clinicians: Tuple[str, ...] = ()
    order: int = 0


@dataclass(frozen=True)
class ClinicianInfo:
    clinician_id: str
    name: str = ""
    practitioner_id: Optional[str] = None
    preferred_offices: Tuple[str, ...] = ()

    @property
    def primary_office(self) -> Optional[str]:
        return self.preferred_offices[0] if self.preferred_offices else None


@dataclass(frozen=True)
class ClientInfo:
    client_id: str
    name: str = ""
    age: Optional[int] = None
    has_mobility_needs: bool = False
    has_sensory_needs: bool = False
    sensory_preferences: Tuple[str, ...] = ()
    has_physical_needs: bool = False
    room_consistency: int = 3
    required_office: Optional[str] = None


class AuditEventType(str, Enum):
    WEBHOOK_RECEIVED = "WEBHOOK_RECEIVED"
    APPOINTMENT_CREATED = "APPOINTMENT_CREATED"
    APPOINTMENT_UPDATED = "APPOINTMENT_UPDATED"
    APPOINTMENT_CANCELLED = "APPOINTMENT_CANCELLED"
    APPOINTMENT_DELETED = "APPOINTMENT_DELETED"
    OFFICE_REASSIGNED = "OFFICE_REASSIGNED"
    ASSIGNMENT_UNRESOLVED = "ASSIGNMENT_UNRESOLVED"
    DEGRADED_CANCELLATION = "DEGRADED_CANCELLATION"
    CLIENT_PREFERENCES_UPDATED = "CLIENT_PREFERENCES_UPDATED"
    RECOVERY_SUCCEEDED = "RECOVERY_SUCCEEDED"
    RECOVERY_SUPERSEDED = "RECOVERY_SUPERSEDED"
    CRITICAL_ERROR = "CRITICAL_ERROR"
    DAILY_RESYNC = "DAILY_RESYNC"
    SYSTEM_ERROR = "SYSTEM_ERROR"


@dataclass(frozen=True)
class AuditRecord:
    event_type: AuditEventType
    description: str
    actor: str = "system"
    severity: str = "info"
    previous_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    system_notes: Optional[Dict[str, Any]] = None
