"""RuleService: CRUD for office-assignment rules.

Every write is checked by compiling the whole active rule set as it would
look afterwards, so the table never holds a cascade the engine would reject
at the next configuration load.
"""
from __future__ import annotations

from types import SimpleNamespace
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from officesync.core.exceptions import ConfigurationError
from officesync.orchestrator.rules.engine import compile_rules
from officesync.orchestrator.rules.repository import AssignmentRuleRepository

if TYPE_CHECKING:
    from officesync.orchestrator.rules.models import AssignmentRule
    from sqlalchemy.ext.asyncio import AsyncSession

_FIELDS = ("name", "kind", "condition", "office_ids", "override_level", "priority", "is_active", "notes")


def _as_row(rule: Any, changes: Optional[Dict[str, Any]] = None) -> SimpleNamespace:
    data = {f: getattr(rule, f, None) for f in _FIELDS}
    data.update(changes or {})
    return SimpleNamespace(**data)


class RuleService:
    """Manage assignment rules in the database."""

    def __init__(self, session: "AsyncSession") -> None:
        self._session = session
        self._repo = AssignmentRuleRepository(session)

    async def list_all(self, *, active_only: bool = False) -> List["AssignmentRule"]:
        return await self._repo.list_all(active_only=active_only)

    async def get(self, rule_id: UUID) -> Optional["AssignmentRule"]:
        return await self._repo.get_by_id(rule_id)

    async def create(self, data: Dict[str, Any]) -> "AssignmentRule":
        """Raises ConfigurationError when the resulting cascade would not compile."""
        if await self._repo.get_by_priority(data["priority"]) is not None:
            raise ConfigurationError("Duplicate rule priority", details={"priority": data["priority"]})
        existing = await self._repo.list_all()
        compile_rules([_as_row(r) for r in existing] + [SimpleNamespace(**{f: data.get(f) for f in _FIELDS})])
        rule = await self._repo.create_rule(
            data["name"],
            data["kind"],
            data["priority"],
            condition=data.get("condition") or "",
            office_ids=data.get("office_ids"),
            override_level=data.get("override_level") or "none",
            is_active=data.get("is_active", True),
            notes=data.get("notes") or "",
        )
        await self._session.refresh(rule)
        return rule

    async def update(self, rule_id: UUID, data: Dict[str, Any]) -> Optional["AssignmentRule"]:
        existing = await self._repo.list_all()
        if not any(r.id == rule_id for r in existing):
            return None
        if "priority" in data:
            holder = await self._repo.get_by_priority(data["priority"])
            if holder is not None and holder.id != rule_id:
                raise ConfigurationError("Duplicate rule priority", details={"priority": data["priority"]})
        compile_rules([_as_row(r, data if r.id == rule_id else None) for r in existing])
        rule = await self._repo.update(rule_id, data)
        if rule is not None:
            await self._session.refresh(rule)
        return rule

    async def delete(self, rule_id: UUID) -> bool:
        return await self._repo.delete(rule_id)
