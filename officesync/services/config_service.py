"""ConfigurationService: load and cache the scheduling configuration.

Offices, clinicians, client profiles and assignment rules are read from
their tables, validated (rule compilation raises ConfigurationError) and
frozen into a ConfigSnapshot. The snapshot is cached for
``refresh_seconds``; the intake-form service invalidates it after writing
a client profile.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from officesync.infra.database.repositories.scheduling_config import (
    ClientProfileRepository,
    ClinicianRepository,
    OfficeRepository,
)
from officesync.orchestrator.cache import TTLCache
from officesync.orchestrator.office_id import is_unresolved, normalize_office_id
from officesync.orchestrator.rules.engine import compile_rules
from officesync.orchestrator.rules.repository import AssignmentRuleRepository
from officesync.orchestrator.snapshot import ConfigSnapshot
from officesync.orchestrator.types import ClientInfo, ClinicianInfo, OfficeInfo
from officesync.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_KEY = "snapshot"


def office_from_row(row) -> OfficeInfo:
    office_id = normalize_office_id(row.office_id)
    if is_unresolved(office_id):
        raise ConfigurationError("Office has an invalid code", details={"office_id": row.office_id})
    return OfficeInfo(
        office_id=office_id,
        name=row.name,
        in_service=row.in_service,
        is_accessible=row.is_accessible,
        is_virtual=row.is_virtual,
        floor=row.floor,
        size=row.size,
        age_groups=tuple(g.lower() for g in row.age_groups or ()),
        features=tuple(f.lower() for f in row.features or ()),
        primary_clinician=row.primary_clinician,
        alternate_clinicians=tuple(row.alternate_clinicians or ()),
        order=row.display_order,
    )


def clinician_from_row(row) -> ClinicianInfo:
    return ClinicianInfo(
        clinician_id=row.clinician_id,
        name=row.name,
        practitioner_id=row.practitioner_id,
        preferred_offices=tuple(normalize_office_id(o) for o in row.preferred_offices or ()),
    )


def client_from_row(row) -> ClientInfo:
    return ClientInfo(
        client_id=row.client_id,
        name=row.name,
        age=row.age,
        has_mobility_needs=row.has_mobility_needs,
        has_sensory_needs=row.has_sensory_needs,
        sensory_preferences=tuple(row.sensory_preferences or ()),
        has_physical_needs=row.has_physical_needs,
        room_consistency=row.room_consistency,
        required_office=row.required_office,
    )


class ConfigurationService:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]],
        *,
        refresh_seconds: float = 300,
    ) -> None:
        self._session_factory = session_factory
        self._cache: TTLCache[ConfigSnapshot] = TTLCache(max_size=1, ttl_seconds=refresh_seconds)
        self._lock = asyncio.Lock()

    async def snapshot(self) -> ConfigSnapshot:
        cached = self._cache.get(_KEY)
        if cached is not None:
            return cached
        async with self._lock:
            cached = self._cache.get(_KEY)
            if cached is not None:
                return cached
            snapshot = await self._load()
            self._cache.put(_KEY, snapshot)
            logger.info(
                "ConfigurationService: loaded %d offices, %d clinicians, %d clients, %d rules",
                len(snapshot.offices), len(snapshot.clinicians), len(snapshot.clients), len(snapshot.rules),
            )
            return snapshot

    def invalidate(self) -> None:
        self._cache.invalidate()

    async def _load(self) -> ConfigSnapshot:
        async with self._session_factory() as session:
            offices = await OfficeRepository(session).list_catalog()
            clinicians = await ClinicianRepository(session).list_active()
            clients = await ClientProfileRepository(session).list_all()
            rules = await AssignmentRuleRepository(session).list_active()
        return ConfigSnapshot(
            offices=tuple(office_from_row(o) for o in offices),
            clinicians={c.clinician_id: clinician_from_row(c) for c in clinicians},
            clients={c.client_id: client_from_row(c) for c in clients},
            rules=compile_rules(rules),
        )


class StaticConfigurationService(ConfigurationService):
    """Serves a fixed snapshot (dry runs, tests)."""

    def __init__(self, snapshot: ConfigSnapshot) -> None:
        super().__init__(None)
        self._snapshot = snapshot
        self.invalidations = 0

    async def snapshot(self) -> ConfigSnapshot:
        return self._snapshot

    def invalidate(self) -> None:
        self.invalidations += 1

    def replace(self, snapshot: ConfigSnapshot) -> None:
        self._snapshot = snapshot
