"""Office-code normalization.

Canonical codes are ``<building>-<unit>``: buildings B and C use numeric
units (``B-4``), building A uses lowercase letter units (``A-b``) and
``A-v`` is the virtual telehealth office. Anything that cannot be read as
one of those becomes ``TBD``. Normalization is pure and idempotent.
"""
from __future__ import annotations

import re
from typing import Optional, Tuple

from officesync.orchestrator.types import UNRESOLVED_OFFICE, VIRTUAL_OFFICE

_BUILDINGS = ("A", "B", "C")
_SHAPE = re.compile(r"^([A-Z])[-\s]?([A-Z0-9]+)$")

GROUND_FLOOR_OFFICES = frozenset({"B-4", "B-5"})


def normalize_office_id(raw: Optional[str]) -> str:
    """Map a free-form location string to a canonical office code or ``TBD``. Never raises."""
    if not isinstance(raw, str):
        return UNRESOLVED_OFFICE
    cleaned = raw.strip().upper()
    if not cleaned or cleaned == UNRESOLVED_OFFICE:
        return UNRESOLVED_OFFICE
    if cleaned in ("A-V", "AV"):
        return VIRTUAL_OFFICE

    m = _SHAPE.match(cleaned)
    if m is None:
        return UNRESOLVED_OFFICE
    building, unit = m.group(1), m.group(2)
    if building not in _BUILDINGS:
        return UNRESOLVED_OFFICE

    if building == "A":
        if unit == "V":
            return VIRTUAL_OFFICE
        if unit.isdigit():
            n = int(unit)
            return f"A-{chr(96 + n)}" if 1 <= n <= 26 else UNRESOLVED_OFFICE
        if len(unit) == 1:
            return f"A-{unit.lower()}"
        return UNRESOLVED_OFFICE

    if unit.isdigit():
        n = int(unit)
        return f"{building}-{n}" if n > 0 else UNRESOLVED_OFFICE
    if len(unit) == 1:
        # Letter units in B/C are positional: A=1, B=2, ...
        return f"{building}-{ord(unit) - 64}"
    return UNRESOLVED_OFFICE


def is_unresolved(office_id: Optional[str]) -> bool:
    return not office_id or office_id == UNRESOLVED_OFFICE


def is_valid_office_id(office_id: str) -> bool:
    """True when *office_id* is already in canonical form and not the sentinel."""
    return not is_unresolved(office_id) and normalize_office_id(office_id) == office_id


def is_virtual_office(office_id: Optional[str]) -> bool:
    return office_id == VIRTUAL_OFFICE


def parse_office_id(office_id: str) -> Tuple[str, str]:
    """Split a canonical code into (building, unit)."""
    building, _, unit = office_id.partition("-")
    return building, unit


def format_office_id(office_id: str) -> str:
    """Human-readable label for reports and notifications."""
    if is_unresolved(office_id):
        return "To Be Determined"
    if office_id == VIRTUAL_OFFICE:
        return "Virtual Office"
    building, unit = parse_office_id(office_id)
    floor = "Ground" if office_id in GROUND_FLOOR_OFFICES else "Upper"
    return f"Building {building}, {floor} Floor, Unit {unit.upper()}"
