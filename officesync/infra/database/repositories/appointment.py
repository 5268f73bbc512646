"""Appointment repository."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update

from officesync.infra.database.models.appointment import Appointment
from officesync.infra.database.repositories.base import BaseRepository


class AppointmentRepository(BaseRepository[Appointment]):
    model = Appointment

    async def list_between(
        self,
        start: datetime,
        end: datetime,
        *,
        status: Optional[str] = None,
    ) -> List[Appointment]:
        """Appointments whose interval intersects [start, end)."""
        stmt = (
            select(Appointment)
            .where(Appointment.start_time < end, Appointment.end_time > start)
            .order_by(Appointment.start_time, Appointment.appointment_id)
        )
        if status:
            stmt = stmt.where(Appointment.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_series(self, series_id: str) -> List[Appointment]:
        stmt = (
            select(Appointment)
            .where(Appointment.series_id == series_id)
            .order_by(Appointment.start_time)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_where_id(self, appointment_id: str) -> int:
        """Bulk DELETE bypassing the identity map. Returns affected row count."""
        result = await self.session.execute(
            delete(Appointment).where(Appointment.appointment_id == appointment_id)
        )
        return result.rowcount or 0

    async def clear_values(self, appointment_id: str) -> int:
        """Blank a row in place so it no longer holds an office or a schedule."""
        result = await self.session.execute(
            update(Appointment)
            .where(Appointment.appointment_id == appointment_id)
            .values(status="deleted", assigned_office=None, needs_assignment=False)
        )
        return result.rowcount or 0

    async def delete_in_range(self, appointment_id: str, start: datetime, end: datetime) -> int:
        """DELETE by id within a time window (catches rows whose id was rewritten)."""
        result = await self.session.execute(
            delete(Appointment).where(
                Appointment.appointment_id == appointment_id,
                Appointment.start_time >= start,
                Appointment.start_time < end,
            )
        )
        return result.rowcount or 0
