"""Repository for AssignmentRule CRUD operations."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import select

from officesync.infra.database.repositories.base import BaseRepository
from officesync.orchestrator.rules.models import AssignmentRule


class AssignmentRuleRepository(BaseRepository[AssignmentRule]):
    model = AssignmentRule

    async def list_active(self, *, limit: int = 500) -> List[AssignmentRule]:
        stmt = (
            select(AssignmentRule)
            .where(AssignmentRule.is_active.is_(True))
            .order_by(AssignmentRule.priority.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_priority(self, priority: int) -> Optional[AssignmentRule]:
        stmt = select(AssignmentRule).where(AssignmentRule.priority == priority)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_rule(
        self,
        name: str,
        kind: str,
        priority: int,
        *,
        condition: str = "",
        office_ids: Optional[List[str]] = None,
        override_level: str = "none",
        is_active: bool = True,
        notes: str = "",
    ) -> AssignmentRule:
        data: Dict[str, Any] = {
            "name": name,
            "kind": kind,
            "priority": priority,
            "condition": condition,
            "office_ids": office_ids or [],
            "override_level": override_level,
            "is_active": is_active,
            "notes": notes,
        }
        return await self.create(data)

    async def list_all(self, *, active_only: bool = False, limit: int = 500) -> List[AssignmentRule]:
        stmt = select(AssignmentRule).order_by(AssignmentRule.priority.desc()).limit(limit)
        if active_only:
            stmt = stmt.where(AssignmentRule.is_active.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
