"""AuditEntry ORM model."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from officesync.infra.database.models.base import Base, _uuid_pk


class AuditEntry(Base):
    """Append-only operator-facing log of terminal pipeline outcomes."""

    __tablename__ = "audit_entries"

    id: Mapped[uuid.UUID] = _uuid_pk()
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    event_type: Mapped[str] = mapped_column(String(48), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(String(64), nullable=False, default="system")
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="info")
    previous_value: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    new_value: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    system_notes: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
