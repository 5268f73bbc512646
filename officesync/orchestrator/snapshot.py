"""Immutable view of the scheduling configuration used for one run."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from officesync.orchestrator.rules.engine import AssignmentEngine, CompiledRule
from officesync.orchestrator.types import (
    AppointmentRecord,
    Assignment,
    ClientInfo,
    ClinicianInfo,
    OfficeInfo,
)


@dataclass(frozen=True)
class ConfigSnapshot:
    offices: Tuple[OfficeInfo, ...] = ()
    clinicians: Dict[str, ClinicianInfo] = field(default_factory=dict)
    clients: Dict[str, ClientInfo] = field(default_factory=dict)
    rules: Tuple[CompiledRule, ...] = ()

    @property
    def engine(self) -> AssignmentEngine:
        return AssignmentEngine(self.rules)

    @property
    def physical_office_count(self) -> int:
        return sum(1 for o in self.offices if not o.is_virtual)

    def office(self, office_id: Optional[str]) -> Optional[OfficeInfo]:
        return next((o for o in self.offices if o.office_id == office_id), None)

    def client_for(self, appointment: AppointmentRecord) -> Optional[ClientInfo]:
        return self.clients.get(appointment.client_id)

    def clinician_for(self, appointment: AppointmentRecord) -> Optional[ClinicianInfo]:
        """Match on clinician id first, then on the provider practitioner id."""
        found = self.clinicians.get(appointment.clinician_id)
        if found is not None:
            return found
        return next(
            (c for c in self.clinicians.values()
             if c.practitioner_id and c.practitioner_id == appointment.clinician_id),
            None,
        )

    def assign(self, appointment: AppointmentRecord, exclude=()) -> Assignment:
        return self.engine.assign(
            appointment,
            self.client_for(appointment),
            self.clinician_for(appointment),
            self.offices,
            exclude=exclude,
        )

    def with_client(self, client: ClientInfo) -> "ConfigSnapshot":
        clients = dict(self.clients)
        clients[client.client_id] = client
        return replace(self, clients=clients)
