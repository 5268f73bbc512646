"""AssignmentRule ORM model: office-assignment rules stored in PostgreSQL."""
from __future__ import annotations

import uuid
from typing import List

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from officesync.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class AssignmentRule(Base, TimestampMixin):
    """One step of the office-assignment cascade.

    Rules are evaluated in descending ``priority``; priorities must be unique
    across the active set. ``condition`` is a ``key:value;key:value`` clause
    list (see ``officesync.orchestrator.rules.conditions``) and ``office_ids``
    lists the candidate offices in preference order.
    """

    __tablename__ = "assignment_rules"

    id: Mapped[uuid.UUID] = _uuid_pk()

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    """client-override | accessibility | age-band | clinician-preference |
    modality | feature-match | fallback"""

    condition: Mapped[str] = mapped_column(Text, nullable=False, server_default="")

    office_ids: Mapped[List[str]] = mapped_column(
        ARRAY(String), nullable=False, server_default="{}",
    )
    """Empty means the kind picks candidates from the catalog itself."""

    override_level: Mapped[str] = mapped_column(String(8), nullable=False, default="none")
    """hard | medium | soft | none. Soft matches keep evaluating to collect alternates."""

    priority: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    notes: Mapped[str] = mapped_column(Text, nullable=False, server_default="")

    def __repr__(self) -> str:
        return (
            f"AssignmentRule(name={self.name!r}, kind={self.kind!r}, "
            f"priority={self.priority}, active={self.is_active})"
        )
