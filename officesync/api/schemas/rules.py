"""Pydantic v2 schemas for the assignment-rules API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RuleResponse(BaseModel):
    id: UUID
    name: str
    kind: str
    condition: str
    office_ids: List[str]
    override_level: str
    priority: int
    is_active: bool
    notes: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RuleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    kind: str = Field(..., min_length=1, max_length=32)
    condition: str = Field(default="")
    office_ids: List[str] = Field(default_factory=list)
    override_level: str = Field(default="none", max_length=8)
    priority: int = Field(..., ge=0, le=1000)
    is_active: bool = True
    notes: str = Field(default="")


class RulePatchRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    kind: Optional[str] = Field(default=None, max_length=32)
    condition: Optional[str] = None
    office_ids: Optional[List[str]] = None
    override_level: Optional[str] = Field(default=None, max_length=8)
    priority: Optional[int] = Field(default=None, ge=0, le=1000)
    is_active: Optional[bool] = None
    notes: Optional[str] = None
