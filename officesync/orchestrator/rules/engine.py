"""AssignmentEngine: priority-ordered office-assignment cascade.

Rules are compiled once per configuration snapshot (``compile_rules``) and
then evaluated highest priority first. The first rule that applies and
yields an in-service, non-excluded office decides, unless it is a ``soft``
override: then its office still wins but the remaining rules are walked to
record alternates. No match yields the ``TBD`` sentinel, never a guess.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from officesync.core.exceptions import ConfigurationError
from officesync.orchestrator.office_id import is_unresolved, normalize_office_id
from officesync.orchestrator.rules.conditions import Condition, client_has_need, parse_condition
from officesync.orchestrator.types import (
    AppointmentRecord,
    Assignment,
    ClientInfo,
    ClinicianInfo,
    OfficeInfo,
    OverrideLevel,
    RuleKind,
    SessionType,
)

logger = logging.getLogger(__name__)

_AGE_GROUPS: Tuple[Tuple[int, int, str], ...] = (
    (0, 12, "children"),
    (13, 17, "teens"),
    (18, 200, "adults"),
)


@dataclass(frozen=True)
class CompiledRule:
    name: str
    kind: RuleKind
    priority: int
    condition: Condition
    office_ids: Tuple[str, ...] = ()
    override: OverrideLevel = OverrideLevel.NONE

    @property
    def label(self) -> str:
        return f"{self.name} (priority {self.priority})"


def compile_rules(rows: Iterable[Any]) -> Tuple[CompiledRule, ...]:
    """Validate rule rows (ORM objects or anything with the same attributes).

    Inactive rows are skipped. Raises ConfigurationError on duplicate
    priorities, unknown kinds or override levels, bad conditions and office
    codes that do not normalize.
    """
    compiled: List[CompiledRule] = []
    seen: Dict[int, str] = {}
    for row in rows:
        if not getattr(row, "is_active", True):
            continue
        name = row.name
        priority = int(row.priority)
        if priority in seen:
            raise ConfigurationError(
                "Duplicate rule priority",
                details={"priority": priority, "rules": [seen[priority], name]},
            )
        seen[priority] = name
        try:
            kind = RuleKind(row.kind)
        except ValueError:
            raise ConfigurationError("Unknown rule kind", details={"rule": name, "kind": row.kind}) from None
        try:
            override = OverrideLevel((row.override_level or "none").lower())
        except ValueError:
            raise ConfigurationError(
                "Unknown override level", details={"rule": name, "override": row.override_level}
            ) from None
        office_ids = []
        for raw in row.office_ids or ():
            office = normalize_office_id(raw)
            if is_unresolved(office):
                raise ConfigurationError("Invalid office code in rule", details={"rule": name, "office": raw})
            office_ids.append(office)
        try:
            condition = parse_condition(row.condition)
        except ConfigurationError as exc:
            exc.details.setdefault("rule", name)
            raise
        compiled.append(CompiledRule(
            name=name,
            kind=kind,
            priority=priority,
            condition=condition,
            office_ids=tuple(office_ids),
            override=override,
        ))
    compiled.sort(key=lambda r: r.priority, reverse=True)
    return tuple(compiled)


def _age_group(age: int) -> Optional[str]:
    for low, high, label in _AGE_GROUPS:
        if low <= age <= high:
            return label
    return None


class AssignmentEngine:
    """Evaluate compiled rules for one appointment. Stateless and deterministic."""

    def __init__(self, rules: Sequence[CompiledRule]) -> None:
        self._rules = sorted(rules, key=lambda r: r.priority, reverse=True)

    @property
    def rules(self) -> List[CompiledRule]:
        return list(self._rules)

    def assign(
        self,
        appointment: AppointmentRecord,
        client: Optional[ClientInfo],
        clinician: Optional[ClinicianInfo],
        catalog: Sequence[OfficeInfo],
        exclude: Iterable[str] = (),
    ) -> Assignment:
        excluded = set(exclude)
        telehealth = appointment.session_type == SessionType.TELEHEALTH
        available = [
            o for o in catalog
            if o.in_service and o.office_id not in excluded and (telehealth or not o.is_virtual)
        ]
        order = {o.office_id: i for i, o in enumerate(catalog)}

        winner: Optional[Tuple[CompiledRule, str]] = None
        alternates: List[str] = []
        for rule in self._rules:
            if not rule.condition.matches(appointment, client):
                continue
            candidates = self._candidates(rule, appointment, client, clinician, available)
            if not candidates:
                continue
            office = self._tie_break(candidates, clinician, order)
            if winner is None:
                logger.debug("AssignmentEngine: %s -> %s via %s", appointment.appointment_id, office, rule.label)
                if rule.override != OverrideLevel.SOFT:
                    return self._result(rule, office, alternates)
                winner = (rule, office)
            elif office != winner[1] and office not in alternates:
                alternates.append(office)

        if winner is not None:
            return self._result(winner[0], winner[1], alternates)
        logger.info("AssignmentEngine: no rule matched appointment %s", appointment.appointment_id)
        return Assignment.unresolved()

    @staticmethod
    def _result(rule: CompiledRule, office: str, alternates: List[str]) -> Assignment:
        return Assignment(
            office_id=office,
            reason=rule.label,
            priority=rule.priority,
            rule_name=rule.name,
            override=rule.override,
            alternates=tuple(alternates),
        )

    # ── candidate selection per rule kind ──────────────────────────

    def _candidates(
        self,
        rule: CompiledRule,
        appointment: AppointmentRecord,
        client: Optional[ClientInfo],
        clinician: Optional[ClinicianInfo],
        available: List[OfficeInfo],
    ) -> List[OfficeInfo]:
        by_id = {o.office_id: o for o in available}

        def listed_or_all() -> List[OfficeInfo]:
            if rule.office_ids:
                return [by_id[i] for i in rule.office_ids if i in by_id]
            return list(available)

        kind = rule.kind
        if kind == RuleKind.CLIENT_OVERRIDE:
            if client is None or is_unresolved(normalize_office_id(client.required_office)):
                return []
            office = by_id.get(normalize_office_id(client.required_office))
            return [office] if office is not None else []

        if kind == RuleKind.ACCESSIBILITY:
            if not client_has_need(appointment, client, "mobility"):
                return []
            return [o for o in listed_or_all() if o.is_accessible]

        if kind == RuleKind.AGE_BAND:
            if client is None or client.age is None:
                return []
            if rule.office_ids:
                return listed_or_all()
            group = _age_group(client.age)
            return [o for o in available if group in o.age_groups]

        if kind == RuleKind.CLINICIAN_PREFERENCE:
            if clinician is None:
                return []
            return self._clinician_offices(rule.condition.clinician_office or "preferred", clinician, available, by_id)

        if kind == RuleKind.MODALITY:
            if rule.office_ids:
                return listed_or_all()
            if rule.condition.clinician_office and clinician is not None:
                return self._clinician_offices(rule.condition.clinician_office, clinician, available, by_id)
            return list(available)

        if kind == RuleKind.FEATURE_MATCH:
            required = set(rule.condition.features)
            if not required and client is not None and client.has_sensory_needs:
                required = {f.lower() for f in client.sensory_preferences}
            if not required:
                return []
            return [o for o in listed_or_all() if required <= {f.lower() for f in o.features}]

        return listed_or_all()

    @staticmethod
    def _clinician_offices(
        mode: str,
        clinician: ClinicianInfo,
        available: List[OfficeInfo],
        by_id: Dict[str, OfficeInfo],
    ) -> List[OfficeInfo]:
        if mode == "primary":
            ids = [clinician.primary_office] if clinician.primary_office else []
            ids += [o.office_id for o in available if o.primary_clinician == clinician.clinician_id]
        elif mode == "alternate":
            ids = [o.office_id for o in available if clinician.clinician_id in o.alternate_clinicians]
        else:
            ids = list(clinician.preferred_offices)
        seen: List[OfficeInfo] = []
        for office_id in ids:
            office = by_id.get(normalize_office_id(office_id))
            if office is not None and office not in seen:
                seen.append(office)
        return seen

    @staticmethod
    def _tie_break(
        candidates: List[OfficeInfo],
        clinician: Optional[ClinicianInfo],
        order: Dict[str, int],
    ) -> str:
        def key(office: OfficeInfo) -> Tuple[int, int]:
            owned = clinician is not None and (
                office.primary_clinician == clinician.clinician_id
                or office.office_id == normalize_office_id(clinician.primary_office)
            )
            return (0 if owned else 1, order.get(office.office_id, len(order)))

        return min(candidates, key=key).office_id
