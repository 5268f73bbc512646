"""Scheduling configuration tables: offices, clinicians, client profiles.

Read-only to the sync pipeline except ClientProfile, which the intake-form
extractor writes.
"""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from officesync.infra.database.models.base import Base, TimestampMixin


class Office(Base, TimestampMixin):
    __tablename__ = "offices"

    office_id: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, server_default="")
    in_service: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_accessible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_virtual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    floor: Mapped[str] = mapped_column(String(16), nullable=False, server_default="")
    size: Mapped[str] = mapped_column(String(16), nullable=False, server_default="medium")
    age_groups: Mapped[List[str]] = mapped_column(ARRAY(String), nullable=False, server_default="{}")
    features: Mapped[List[str]] = mapped_column(ARRAY(String), nullable=False, server_default="{}")
    primary_clinician: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    alternate_clinicians: Mapped[List[str]] = mapped_column(ARRAY(String), nullable=False, server_default="{}")
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str] = mapped_column(Text, nullable=False, server_default="")


class Clinician(Base, TimestampMixin):
    __tablename__ = "clinicians"

    clinician_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    practitioner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, server_default="")
    preferred_offices: Mapped[List[str]] = mapped_column(ARRAY(String), nullable=False, server_default="{}")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ClientProfile(Base, TimestampMixin):
    """Per-client accessibility and placement requirements."""

    __tablename__ = "client_profiles"

    client_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, server_default="")
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    has_mobility_needs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mobility_details: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    has_sensory_needs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sensory_preferences: Mapped[List[str]] = mapped_column(ARRAY(String), nullable=False, server_default="{}")
    sensory_details: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    has_physical_needs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    physical_details: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    room_consistency: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    has_support_needs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    support_details: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    required_office: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    additional_notes: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    form_type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="Unknown")
    form_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
