"""Rule condition clauses.

A condition is a ``;``-separated list of ``key:value`` clauses that must
all hold, e.g. ``session_type:in-person|family;age_max:17``. An empty
condition always holds. Parsing happens once when the rule set is loaded;
anything malformed raises ConfigurationError there, never at match time.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple

from officesync.core.exceptions import ConfigurationError
from officesync.orchestrator.types import AppointmentRecord, ClientInfo, SessionType

REQUIREMENTS = ("mobility", "sensory", "physical")
CLINICIAN_OFFICE_MODES = ("primary", "preferred", "alternate")


@dataclass(frozen=True)
class Condition:
    session_types: FrozenSet[SessionType] = frozenset()
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    requires: FrozenSet[str] = frozenset()
    clinician_office: Optional[str] = None
    features: Tuple[str, ...] = ()

    @property
    def has_age_band(self) -> bool:
        return self.age_min is not None or self.age_max is not None

    def matches(self, appointment: AppointmentRecord, client: Optional[ClientInfo]) -> bool:
        if self.session_types and appointment.session_type not in self.session_types:
            return False
        if self.has_age_band:
            if client is None or client.age is None:
                return False
            if self.age_min is not None and client.age < self.age_min:
                return False
            if self.age_max is not None and client.age > self.age_max:
                return False
        for need in self.requires:
            if not client_has_need(appointment, client, need):
                return False
        return True


def client_has_need(appointment: AppointmentRecord, client: Optional[ClientInfo], need: str) -> bool:
    """Per-appointment requirement flags count as well as the client's profile."""
    if appointment.requirements.get(need):
        return True
    if need == "mobility" and appointment.requirements.get("accessibility"):
        return True
    if client is None:
        return False
    if need == "mobility":
        return client.has_mobility_needs
    if need == "sensory":
        return client.has_sensory_needs
    if need == "physical":
        return client.has_physical_needs
    return False


def _int(key: str, value: str, source: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise ConfigurationError(
            f"Condition {key} must be an integer", details={"condition": source, "value": value}
        ) from None
    if n < 0:
        raise ConfigurationError(f"Condition {key} must be >= 0", details={"condition": source})
    return n


def parse_condition(text: Optional[str]) -> Condition:
    """Parse a condition string. Raises ConfigurationError on unknown keys or bad values."""
    source = (text or "").strip()
    if not source:
        return Condition()

    fields: dict = {}
    for clause in source.split(";"):
        clause = clause.strip()
        if not clause:
            continue
        key, sep, value = clause.partition(":")
        key, value = key.strip().lower(), value.strip()
        if not sep or not value:
            raise ConfigurationError("Malformed condition clause", details={"condition": source, "clause": clause})
        if key in fields:
            raise ConfigurationError("Duplicate condition key", details={"condition": source, "key": key})

        if key == "session_type":
            try:
                fields[key] = frozenset(SessionType(v.strip().lower()) for v in value.split("|"))
            except ValueError:
                raise ConfigurationError(
                    "Unknown session type in condition", details={"condition": source, "value": value}
                ) from None
        elif key in ("age_min", "age_max"):
            fields[key] = _int(key, value, source)
        elif key == "requires":
            needs = frozenset(v.strip().lower() for v in value.split("|"))
            unknown = needs - set(REQUIREMENTS)
            if unknown:
                raise ConfigurationError(
                    "Unknown requirement in condition", details={"condition": source, "value": sorted(unknown)}
                )
            fields[key] = needs
        elif key == "clinician_office":
            mode = value.lower()
            if mode not in CLINICIAN_OFFICE_MODES:
                raise ConfigurationError(
                    "clinician_office must be primary, preferred or alternate", details={"condition": source}
                )
            fields[key] = mode
        elif key == "features":
            fields[key] = tuple(f.strip().lower() for f in value.split(",") if f.strip())
        else:
            raise ConfigurationError("Unknown condition key", details={"condition": source, "key": key})

    cond = Condition(
        session_types=fields.get("session_type", frozenset()),
        age_min=fields.get("age_min"),
        age_max=fields.get("age_max"),
        requires=fields.get("requires", frozenset()),
        clinician_office=fields.get("clinician_office"),
        features=fields.get("features", ()),
    )
    if cond.age_min is not None and cond.age_max is not None and cond.age_min > cond.age_max:
        raise ConfigurationError("age_min is greater than age_max", details={"condition": source})
    return cond
