#!/usr/bin/env python3
"""Seed the office catalog and the default assignment-rule cascade.

Replaces every row in ``assignment_rules`` and upserts the offices below.
Clinicians and client profiles are not touched; they come from the admin
tooling and from intake forms.

Run:
    python -m officesync.scripts.seed_offices
"""
from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace

from sqlalchemy import delete

from officesync.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from officesync.infra.database.repositories.scheduling_config import OfficeRepository
from officesync.orchestrator.rules.engine import compile_rules
from officesync.orchestrator.rules.models import AssignmentRule
from officesync.orchestrator.rules.repository import AssignmentRuleRepository

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# ── Office catalog ─────────────────────────────────────────────────────────────

OFFICES = [
    {"office_id": "B-1", "name": "Break Room", "floor": "upstairs", "size": "small", "notes": "Last resort only"},
    {"office_id": "B-2", "name": "Office B-2", "floor": "upstairs", "size": "small"},
    {"office_id": "B-3", "name": "Office B-3", "floor": "upstairs", "size": "medium"},
    {"office_id": "B-4", "name": "Office B-4", "floor": "ground", "size": "medium",
     "is_accessible": True, "features": ["quiet", "dimmable-lights"]},
    {"office_id": "B-5", "name": "Office B-5", "floor": "ground", "size": "medium",
     "is_accessible": True, "age_groups": ["teens"]},
    {"office_id": "C-1", "name": "Office C-1", "floor": "upstairs", "size": "medium",
     "age_groups": ["children"], "features": ["play-space"]},
    {"office_id": "C-2", "name": "Office C-2", "floor": "upstairs", "size": "large",
     "age_groups": ["adults"]},
    {"office_id": "C-3", "name": "Office C-3", "floor": "ground", "size": "large",
     "is_accessible": True, "age_groups": ["teens", "adults"]},
    {"office_id": "A-v", "name": "Virtual Office", "floor": "virtual", "size": "medium", "is_virtual": True},
]

# ── Rule cascade (highest priority first) ──────────────────────────────────────

RULES = [
    {"name": "Client required office", "kind": "client-override", "priority": 100,
     "override_level": "hard"},
    {"name": "Mobility needs", "kind": "accessibility", "priority": 90,
     "condition": "requires:mobility", "office_ids": ["B-4", "B-5", "C-3"], "override_level": "hard"},
    {"name": "Young children", "kind": "age-band", "priority": 80,
     "condition": "age_max:10;session_type:in-person|family", "office_ids": ["C-1"], "override_level": "medium"},
    {"name": "Older children and teens", "kind": "age-band", "priority": 75,
     "condition": "age_min:11;age_max:17;session_type:in-person|family", "override_level": "medium"},
    {"name": "Sensory preferences", "kind": "feature-match", "priority": 70,
     "condition": "requires:sensory;session_type:in-person|family|group", "override_level": "soft"},
    {"name": "Clinician primary office", "kind": "clinician-preference", "priority": 65,
     "condition": "clinician_office:primary;session_type:in-person", "override_level": "medium"},
    {"name": "Clinician preferred offices", "kind": "clinician-preference", "priority": 62,
     "condition": "clinician_office:preferred;session_type:in-person", "override_level": "soft"},
    {"name": "Family and group sessions", "kind": "modality", "priority": 55,
     "condition": "session_type:family|group", "office_ids": ["C-2", "C-3"], "override_level": "medium"},
    {"name": "Telehealth from preferred office", "kind": "clinician-preference", "priority": 40,
     "condition": "clinician_office:preferred;session_type:telehealth", "override_level": "soft"},
    {"name": "Clinician alternate offices", "kind": "clinician-preference", "priority": 35,
     "condition": "clinician_office:alternate;session_type:in-person|family", "override_level": "soft"},
    {"name": "Any available office", "kind": "fallback", "priority": 20,
     "condition": "session_type:in-person|family|group",
     "office_ids": ["B-2", "B-3", "C-1", "C-2", "B-4", "B-5", "C-3"]},
    {"name": "Break room as last resort", "kind": "fallback", "priority": 15,
     "condition": "session_type:in-person|family|group", "office_ids": ["B-1"]},
    {"name": "Virtual office for telehealth", "kind": "modality", "priority": 10,
     "condition": "session_type:telehealth", "office_ids": ["A-v"]},
]

_RULE_DEFAULTS = {"is_active": True, "condition": "", "office_ids": [], "override_level": "none"}


async def seed() -> None:
    await ensure_database_exists()
    engine = build_engine()
    session_factory = build_session_factory(engine)
    await init_db()

    compile_rules(SimpleNamespace(**{**_RULE_DEFAULTS, **r}) for r in RULES)

    async with session_factory() as session:
        offices = OfficeRepository(session)
        for order, office in enumerate(OFFICES):
            _, created = await offices.save(office["office_id"], {**office, "display_order": order})
            logger.info("  %s office %s", "+" if created else "~", office["office_id"])

        result = await session.execute(delete(AssignmentRule))
        if result.rowcount:
            logger.info("Deleted %d existing assignment rules.", result.rowcount)

        rules = AssignmentRuleRepository(session)
        for rule in RULES:
            await rules.create_rule(**rule)
            logger.info("  + rule %3d: %s", rule["priority"], rule["name"])

        await session.commit()

    await close_engine()
    logger.info("Seed complete: %d offices, %d rules.", len(OFFICES), len(RULES))


if __name__ == "__main__":
    asyncio.run(seed())
