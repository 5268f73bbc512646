"""Same-office overlap detection and reassignment.

Two scheduled appointments conflict when they hold the same physical office
over half-open intervals that overlap (``s1 < e2 and s2 < e1``; touching
endpoints do not conflict). The virtual office never conflicts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from officesync.orchestrator.office_id import is_unresolved, is_virtual_office
from officesync.orchestrator.snapshot import ConfigSnapshot
from officesync.orchestrator.types import UNRESOLVED_OFFICE, AppointmentRecord

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Reassignment:
    appointment: AppointmentRecord
    previous_office: Optional[str]
    new_office: str
    reason: str

    @property
    def flagged(self) -> bool:
        return self.appointment.needs_assignment


def overlaps(a: AppointmentRecord, b: AppointmentRecord) -> bool:
    return a.start < b.end and b.start < a.end


def _holds_office(appt: AppointmentRecord) -> bool:
    return (
        appt.is_active
        and not is_unresolved(appt.assigned_office)
        and not is_virtual_office(appt.assigned_office)
    )


def find_conflicts(appointments: Iterable[AppointmentRecord]) -> List[Tuple[AppointmentRecord, AppointmentRecord]]:
    """Every overlapping same-office pair, in deterministic order."""
    by_office: Dict[str, List[AppointmentRecord]] = {}
    for appt in appointments:
        if _holds_office(appt):
            by_office.setdefault(appt.assigned_office, []).append(appt)

    pairs: List[Tuple[AppointmentRecord, AppointmentRecord]] = []
    for office in sorted(by_office):
        group = sorted(by_office[office], key=lambda a: (a.start, a.appointment_id))
        for i, first in enumerate(group):
            for second in group[i + 1:]:
                if second.start >= first.end:
                    break
                pairs.append((first, second))
    return pairs


def pick_loser(a: AppointmentRecord, b: AppointmentRecord) -> AppointmentRecord:
    """Lower priority loses; then the later-created; then the larger id."""
    def rank(appt: AppointmentRecord) -> Tuple[int, datetime, str]:
        return (-appt.assignment_priority, appt.created_at or _EPOCH, appt.appointment_id)

    return max(a, b, key=rank)


class ConflictResolver:
    """Re-run the assignment engine for conflict losers until the day is clean."""

    def __init__(self, snapshot: ConfigSnapshot) -> None:
        self._snapshot = snapshot

    def resolve(self, appointments: Iterable[AppointmentRecord]) -> List[Reassignment]:
        current: Dict[str, AppointmentRecord] = {a.appointment_id: a for a in appointments}
        original = {k: v.assigned_office for k, v in current.items()}
        changed: Dict[str, str] = {}

        passes = max(1, self._snapshot.physical_office_count)
        for _ in range(passes):
            conflicts = find_conflicts(current.values())
            if not conflicts:
                break
            handled: Set[str] = set()
            for first, second in conflicts:
                first = current[first.appointment_id]
                second = current[second.appointment_id]
                if first.appointment_id in handled or second.appointment_id in handled:
                    continue
                if not (_holds_office(first) and _holds_office(second)
                        and first.assigned_office == second.assigned_office and overlaps(first, second)):
                    continue
                loser = pick_loser(first, second)
                winner = second if loser is first else first
                current[loser.appointment_id], changed[loser.appointment_id] = self._reassign(
                    loser, winner, current.values()
                )
                handled.add(loser.appointment_id)

        residual = find_conflicts(current.values())
        for first, second in residual:
            first = current[first.appointment_id]
            second = current[second.appointment_id]
            if not (_holds_office(first) and _holds_office(second)
                    and first.assigned_office == second.assigned_office):
                continue
            loser = pick_loser(first, second)
            note = f"Unresolved conflict in {loser.assigned_office} with {first.appointment_id if loser is second else second.appointment_id}"
            current[loser.appointment_id] = replace(
                loser, assigned_office=UNRESOLVED_OFFICE, needs_assignment=True, conflict_note=note,
            )
            changed[loser.appointment_id] = note
            logger.warning("ConflictResolver: %s", note)

        return [
            Reassignment(
                appointment=current[appt_id],
                previous_office=original[appt_id],
                new_office=current[appt_id].assigned_office or UNRESOLVED_OFFICE,
                reason=reason,
            )
            for appt_id, reason in sorted(changed.items())
        ]

    def _reassign(
        self,
        loser: AppointmentRecord,
        winner: AppointmentRecord,
        day: Iterable[AppointmentRecord],
    ) -> Tuple[AppointmentRecord, str]:
        busy = {
            a.assigned_office for a in day
            if a.appointment_id != loser.appointment_id and _holds_office(a) and overlaps(a, loser)
        }
        busy.add(loser.assigned_office)
        assignment = self._snapshot.assign(loser, exclude=busy)
        if assignment.resolved:
            reason = (
                f"Moved from {loser.assigned_office} to {assignment.office_id}: "
                f"overlapped with {winner.appointment_id}"
            )
            updated = replace(loser.with_assignment(assignment), conflict_note=reason)
            logger.info("ConflictResolver: %s %s", loser.appointment_id, reason)
            return updated, reason

        reason = f"No free office; was {loser.assigned_office}, overlapped with {winner.appointment_id}"
        logger.warning("ConflictResolver: %s needs manual assignment (%s)", loser.appointment_id, reason)
        updated = replace(
            loser, assigned_office=UNRESOLVED_OFFICE, needs_assignment=True, conflict_note=reason,
        )
        return updated, reason
