"""Unit tests for RuleService validation (repository and session mocked)."""
from __future__ import annotations

import asyncio
import unittest
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from officesync.core.exceptions import ConfigurationError
from officesync.services.rule_service import RuleService


def _row(name, kind, priority, condition="", office_ids=None, is_active=True):
    return SimpleNamespace(
        id=uuid.uuid4(), name=name, kind=kind, priority=priority, condition=condition,
        office_ids=office_ids or [], override_level="medium", is_active=is_active, notes="",
    )


EXISTING = [
    _row("Mobility needs", "accessibility", 90, "requires:mobility", ["B-4"]),
    _row("Anything", "fallback", 5),
]


def _data(**overrides):
    data = {
        "name": "Telehealth",
        "kind": "modality",
        "priority": 10,
        "condition": "session_type:telehealth",
        "office_ids": ["A-v"],
        "override_level": "medium",
        "is_active": True,
        "notes": "",
    }
    data.update(overrides)
    return data


class TestRuleService(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = MagicMock()
        self.repo.list_all = AsyncMock(return_value=list(EXISTING))
        self.repo.get_by_priority = AsyncMock(return_value=None)
        self.repo.create_rule = AsyncMock(side_effect=lambda *a, **kw: SimpleNamespace(name=a[0]))
        self.repo.update = AsyncMock(side_effect=lambda rule_id, data: SimpleNamespace(id=rule_id, **data))
        patcher = patch("officesync.services.rule_service.AssignmentRuleRepository", return_value=self.repo)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.session = MagicMock()
        self.session.refresh = AsyncMock()
        self.service = RuleService(self.session)

    def test_create_valid_rule(self) -> None:
        rule = asyncio.run(self.service.create(_data()))
        self.assertEqual(rule.name, "Telehealth")
        self.repo.create_rule.assert_awaited_once()
        self.session.refresh.assert_awaited_once()

    def test_create_rejects_duplicate_priority(self) -> None:
        self.repo.get_by_priority.return_value = EXISTING[0]
        with self.assertRaises(ConfigurationError):
            asyncio.run(self.service.create(_data(priority=90)))
        self.repo.create_rule.assert_not_awaited()

    def test_create_rejects_bad_condition(self) -> None:
        with self.assertRaises(ConfigurationError):
            asyncio.run(self.service.create(_data(condition="color:blue")))

    def test_create_rejects_bad_office(self) -> None:
        with self.assertRaises(ConfigurationError):
            asyncio.run(self.service.create(_data(office_ids=["Z-9"])))

    def test_update_unknown_rule(self) -> None:
        self.assertIsNone(asyncio.run(self.service.update(uuid.uuid4(), {"notes": "x"})))

    def test_update_validates_merged_row(self) -> None:
        target = EXISTING[1].id
        with self.assertRaises(ConfigurationError):
            asyncio.run(self.service.update(target, {"kind": "nonsense"}))
        rule = asyncio.run(self.service.update(target, {"notes": "catch-all"}))
        self.assertEqual(rule.notes, "catch-all")

    def test_update_priority_clash(self) -> None:
        self.repo.get_by_priority.return_value = EXISTING[0]
        with self.assertRaises(ConfigurationError):
            asyncio.run(self.service.update(EXISTING[1].id, {"priority": 90}))
