"""Appointment ORM model (the record store's main table)."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from officesync.infra.database.models.base import Base


class Appointment(Base):
    """One provider appointment with its office assignment.

    The primary key is the provider's appointment id so every write is an
    upsert keyed on it. ``last_modified`` and ``created_at`` come from the
    sync pipeline, not from database defaults, because conflict tie-breaks
    depend on the provider's creation time.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_start_time", "start_time"),
        Index("ix_appointments_office_start", "assigned_office", "start_time"),
    )

    appointment_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    client_name: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    clinician_id: Mapped[str] = mapped_column(String(64), nullable=False, server_default="")
    clinician_name: Mapped[str] = mapped_column(Text, nullable=False, server_default="")

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    session_type: Mapped[str] = mapped_column(String(16), nullable=False, default="in-person")
    # in-person | telehealth | group | family
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="scheduled")
    # scheduled | completed | cancelled | deleted
    service_name: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    location: Mapped[str] = mapped_column(Text, nullable=False, server_default="")

    assigned_office: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    assignment_reason: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    assignment_rule: Mapped[str] = mapped_column(String(255), nullable=False, server_default="")
    assignment_priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assignment_override: Mapped[str] = mapped_column(String(8), nullable=False, default="none")
    alternate_offices: Mapped[List[str]] = mapped_column(ARRAY(String), nullable=False, server_default="{}")

    needs_assignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    conflict_note: Mapped[str] = mapped_column(Text, nullable=False, server_default="")

    source: Mapped[str] = mapped_column(String(16), nullable=False, default="provider")
    series_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    tags: Mapped[List[str]] = mapped_column(ARRAY(String), nullable=False, server_default="{}")
    requirements: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default="{}")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_modified: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"Appointment(id={self.appointment_id!r}, office={self.assigned_office!r}, "
            f"status={self.status!r})"
        )
