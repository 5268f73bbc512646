"""Provider webhook payloads parsed into typed events.

Parsing happens once at ingress: a payload either becomes one of the event
classes below or raises ValidationError. Nothing downstream touches the raw
provider dictionaries except to store them.
"""
from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from officesync.core.exceptions import ValidationError
from officesync.orchestrator.types import SessionType

_EVENT_ALIASES: Dict[str, str] = {
    "appointmentcreated": "created",
    "appointmentupdated": "updated",
    "appointmentconfirmed": "updated",
    "appointmentrescheduled": "rescheduled",
    "appointmentcancelled": "cancelled",
    "appointmentcanceled": "cancelled",
    "appointmentdeleted": "deleted",
    "formsubmitted": "form",
    "intakesubmitted": "form",
}

_TELEHEALTH = re.compile(r"tele(health|therapy|med|session)|virtual|remote|video", re.IGNORECASE)
_GROUP = re.compile(r"group|workshop|class|seminar", re.IGNORECASE)
_FAMILY = re.compile(r"family|couples|relationship|parental|parent-child", re.IGNORECASE)
_RECURRING = re.compile(r"recurring|weekly|biweekly|series", re.IGNORECASE)

_FREQUENCIES = ("weekly", "biweekly", "monthly")


def infer_session_type(service_name: str) -> SessionType:
    """Derive the modality from the provider's free-text service name."""
    if _TELEHEALTH.search(service_name or ""):
        return SessionType.TELEHEALTH
    if _GROUP.search(service_name or ""):
        return SessionType.GROUP
    if _FAMILY.search(service_name or ""):
        return SessionType.FAMILY
    return SessionType.IN_PERSON


@dataclass(frozen=True)
class RecurrencePattern:
    frequency: str
    occurrences: int
    end_date: Optional[date] = None


@dataclass(frozen=True)
class AppointmentPayload:
    appointment_id: str
    client_id: str
    start: datetime
    end: datetime
    client_name: str = ""
    client_date_of_birth: Optional[date] = None
    status: str = ""
    service_name: str = ""
    practitioner_id: str = ""
    practitioner_name: str = ""
    location: str = ""
    date_created: Optional[datetime] = None
    cancellation_reason: str = ""
    notes: str = ""
    tags: Tuple[str, ...] = ()
    recurrence: Optional[RecurrencePattern] = None

    @property
    def session_type(self) -> SessionType:
        return infer_session_type(self.service_name)

    @property
    def is_recurring(self) -> bool:
        if self.recurrence is not None:
            return True
        return any(_RECURRING.search(t) for t in self.tags) or bool(_RECURRING.search(self.notes))


@dataclass(frozen=True)
class _AppointmentEvent:
    kind: ClassVar[str] = ""
    appointment: AppointmentPayload
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def entity_id(self) -> str:
        return self.appointment.appointment_id

    @property
    def client_id(self) -> str:
        return self.appointment.client_id


@dataclass(frozen=True)
class CreatedEvent(_AppointmentEvent):
    kind: ClassVar[str] = "created"


@dataclass(frozen=True)
class UpdatedEvent(_AppointmentEvent):
    kind: ClassVar[str] = "updated"


@dataclass(frozen=True)
class RescheduledEvent(_AppointmentEvent):
    kind: ClassVar[str] = "rescheduled"


@dataclass(frozen=True)
class CancelledEvent(_AppointmentEvent):
    kind: ClassVar[str] = "cancelled"


@dataclass(frozen=True)
class DeletedEvent(_AppointmentEvent):
    kind: ClassVar[str] = "deleted"


@dataclass(frozen=True)
class FormSubmittedEvent:
    kind: ClassVar[str] = "form"
    intake_id: str
    client_id: str
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def entity_id(self) -> str:
        return f"client-{self.client_id}"


ProviderEvent = Union[
    CreatedEvent, UpdatedEvent, RescheduledEvent, CancelledEvent, DeletedEvent, FormSubmittedEvent
]

_EVENT_CLASSES = {
    cls.kind: cls
    for cls in (CreatedEvent, UpdatedEvent, RescheduledEvent, CancelledEvent, DeletedEvent)
}


# ── parsing ─────────────────────────────────────────────────────────────────

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _instant(iso: Any, epoch_ms: Any, field_name: str) -> Optional[datetime]:
    if iso:
        try:
            dt = datetime.fromisoformat(str(iso).replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{field_name} is not an ISO-8601 timestamp", details={"value": iso}) from None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    if epoch_ms not in (None, ""):
        try:
            return datetime.fromtimestamp(float(epoch_ms) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            raise ValidationError(f"{field_name} is not a timestamp", details={"value": epoch_ms}) from None
    return None


def _date(value: Any) -> Optional[date]:
    text = _text(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _tags(value: Any) -> Tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(_text(v) for v in value if _text(v))
    return tuple(t.strip() for t in _text(value).split(",") if t.strip())


def _recurrence(value: Any) -> Optional[RecurrencePattern]:
    if not isinstance(value, dict):
        return None
    frequency = _text(value.get("frequency")).lower()
    if frequency not in _FREQUENCIES:
        raise ValidationError("RecurrencePattern.frequency must be weekly, biweekly or monthly",
                              details={"value": frequency})
    try:
        occurrences = int(value.get("occurrences") or 1)
    except (TypeError, ValueError):
        raise ValidationError("RecurrencePattern.occurrences must be an integer") from None
    if occurrences < 1:
        raise ValidationError("RecurrencePattern.occurrences must be >= 1")
    end = _date(value.get("endDate"))
    return RecurrencePattern(frequency=frequency, occurrences=occurrences, end_date=end)


def _appointment(data: Any, fallback_client_id: str) -> AppointmentPayload:
    if not isinstance(data, dict):
        raise ValidationError("Appointment object is required for appointment events")
    appointment_id = _text(data.get("Id"))
    if not appointment_id:
        raise ValidationError("Appointment.Id is required", details={"field": "Appointment.Id"})
    client_id = _text(data.get("ClientId")) or fallback_client_id
    if not client_id:
        raise ValidationError("ClientId is required", details={"field": "ClientId"})
    start = _instant(data.get("StartDateIso"), data.get("StartDate"), "StartDateIso")
    end = _instant(data.get("EndDateIso"), data.get("EndDate"), "EndDateIso")
    if start is None or end is None:
        raise ValidationError("Appointment start and end are required", details={"appointment_id": appointment_id})
    if not start < end:
        raise ValidationError("Appointment must start before it ends", details={"appointment_id": appointment_id})
    return AppointmentPayload(
        appointment_id=appointment_id,
        client_id=client_id,
        start=start,
        end=end,
        client_name=_text(data.get("ClientName")),
        client_date_of_birth=_date(data.get("ClientDateOfBirth")),
        status=_text(data.get("Status")),
        service_name=_text(data.get("ServiceName")),
        practitioner_id=_text(data.get("PractitionerId")),
        practitioner_name=_text(data.get("PractitionerName")),
        location=_text(data.get("LocationName") or data.get("LocationId")),
        date_created=_instant(None, data.get("DateCreated"), "DateCreated"),
        cancellation_reason=_text(data.get("CancellationReason")),
        notes=_text(data.get("Notes")),
        tags=_tags(data.get("Tags")),
        recurrence=_recurrence(data.get("RecurrencePattern")),
    )


def event_kind(payload: Dict[str, Any]) -> str:
    raw_type = _text(payload.get("EventType") or payload.get("Type"))
    if not raw_type:
        raise ValidationError("Missing event type field (EventType or Type)")
    kind = _EVENT_ALIASES.get(raw_type.replace(" ", "").lower())
    if kind is None:
        raise ValidationError(f"Unsupported event type: {raw_type}", details={"event_type": raw_type})
    return kind


def parse_event(payload: Any) -> ProviderEvent:
    """Turn a decoded webhook body into a typed event. Raises ValidationError."""
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")
    kind = event_kind(payload)
    client_id = _text(payload.get("ClientId"))
    if kind == "form":
        intake_id = _text(payload.get("IntakeId") or payload.get("formId"))
        if not intake_id or not client_id:
            raise ValidationError("Form events need IntakeId and ClientId")
        return FormSubmittedEvent(intake_id=intake_id, client_id=client_id, raw=payload)
    appointment = _appointment(payload.get("Appointment"), client_id)
    return _EVENT_CLASSES[kind](appointment=appointment, raw=payload)


# ── fingerprint ─────────────────────────────────────────────────────────────

def fingerprint(event: ProviderEvent) -> str:
    """Deterministic ledger key.

    Updates and reschedules hash every field that can change the outcome, so
    a changed time or clinician is a new event while an identical redelivery
    is not. Creates, cancels and deletes hash the provider creation time.
    """
    if isinstance(event, FormSubmittedEvent):
        material: Dict[str, Any] = {"client": event.client_id, "intake": event.intake_id}
    else:
        appt = event.appointment
        if isinstance(event, (UpdatedEvent, RescheduledEvent)):
            material = {
                "start": appt.start.isoformat(),
                "end": appt.end.isoformat(),
                "status": appt.status,
                "location": appt.location,
                "practitioner": appt.practitioner_id,
                "service": appt.service_name,
                "client": appt.client_id,
                "recurrence": appt.recurrence.frequency if appt.recurrence else None,
            }
        else:
            created = appt.date_created.isoformat() if appt.date_created else appt.start.isoformat()
            material = {"created": created, "client": appt.client_id}
    digest = hashlib.sha256(json.dumps(material, sort_keys=True).encode("utf-8")).hexdigest()
    return f"{event.kind}:{event.entity_id}:{digest}"
