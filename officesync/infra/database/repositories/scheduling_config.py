"""Repositories for the scheduling configuration tables."""
from __future__ import annotations

from typing import List

from sqlalchemy import select

from officesync.infra.database.models.scheduling_config import Clinician, ClientProfile, Office
from officesync.infra.database.repositories.base import BaseRepository


class OfficeRepository(BaseRepository[Office]):
    model = Office

    async def list_catalog(self) -> List[Office]:
        """Every office in catalog order (in-service filtering is the engine's job)."""
        stmt = select(Office).order_by(Office.display_order, Office.office_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class ClinicianRepository(BaseRepository[Clinician]):
    model = Clinician

    async def list_active(self) -> List[Clinician]:
        stmt = select(Clinician).where(Clinician.is_active.is_(True)).order_by(Clinician.name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class ClientProfileRepository(BaseRepository[ClientProfile]):
    model = ClientProfile

    async def list_all(self) -> List[ClientProfile]:
        result = await self.session.execute(select(ClientProfile))
        return list(result.scalars().all())
