"""
Unit tests for the office-assignment cascade: condition parsing, rule
compilation and AssignmentEngine.assign.
"""
from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from officesync.core.exceptions import ConfigurationError
from officesync.orchestrator.rules.conditions import parse_condition
from officesync.orchestrator.rules.engine import AssignmentEngine, compile_rules
from officesync.orchestrator.types import (
    AppointmentRecord,
    ClientInfo,
    ClinicianInfo,
    OfficeInfo,
    OverrideLevel,
    SessionType,
)

_START = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _rule(name, kind, priority, condition="", office_ids=None, override_level="medium", is_active=True):
    """Minimal rule-row object for testing (no DB)."""
    return SimpleNamespace(
        name=name,
        kind=kind,
        priority=priority,
        condition=condition,
        office_ids=office_ids or [],
        override_level=override_level,
        is_active=is_active,
    )


def _appointment(session_type=SessionType.IN_PERSON, clinician_id="clin-1", **kwargs) -> AppointmentRecord:
    return AppointmentRecord(
        appointment_id=kwargs.pop("appointment_id", "appt-1"),
        client_id=kwargs.pop("client_id", "client-1"),
        start=_START,
        end=_START + timedelta(minutes=50),
        clinician_id=clinician_id,
        session_type=session_type,
        **kwargs,
    )


CATALOG = (
    OfficeInfo("B-2", order=0),
    OfficeInfo("B-3", order=1, primary_clinician="clin-2"),
    OfficeInfo("B-4", order=2, is_accessible=True, features=("quiet",)),
    OfficeInfo("B-5", order=3, is_accessible=True, age_groups=("teens",)),
    OfficeInfo("C-1", order=4, age_groups=("children",)),
    OfficeInfo("C-2", order=5, in_service=False),
    OfficeInfo("A-v", order=6, is_virtual=True),
)

CLINICIAN = ClinicianInfo("clin-1", preferred_offices=("B-3", "B-2"))


def _cascade():
    return compile_rules([
        _rule("Client required office", "client-override", 100, override_level="hard"),
        _rule("Mobility needs", "accessibility", 90, "requires:mobility", ["B-4", "B-5"], "hard"),
        _rule("Children", "age-band", 80, "age_max:12;session_type:in-person|family"),
        _rule("Sensory", "feature-match", 70, "requires:sensory", override_level="soft"),
        _rule("Clinician preferred", "clinician-preference", 62, "clinician_office:preferred;session_type:in-person"),
        _rule("Telehealth", "modality", 10, "session_type:telehealth", ["A-v"]),
        _rule("Anything", "fallback", 5, "session_type:in-person|family|group"),
    ])


class TestParseCondition(unittest.TestCase):
    def test_empty_condition_always_applies(self) -> None:
        cond = parse_condition("")
        self.assertTrue(cond.matches(_appointment(), None))

    def test_clauses(self) -> None:
        cond = parse_condition("session_type:in-person|family; age_min:4 ;age_max:12;requires:mobility")
        self.assertEqual(cond.session_types, frozenset({SessionType.IN_PERSON, SessionType.FAMILY}))
        self.assertEqual((cond.age_min, cond.age_max), (4, 12))
        self.assertEqual(cond.requires, frozenset({"mobility"}))

    def test_unknown_key_raises(self) -> None:
        with self.assertRaises(ConfigurationError):
            parse_condition("color:blue")

    def test_malformed_values_raise(self) -> None:
        for text in ("age_min:ten", "session_type:walk-in", "requires:wifi", "clinician_office:nearest",
                     "age_min:12;age_max:4", "age_min", "age_min:1;age_min:2"):
            with self.subTest(text=text):
                with self.assertRaises(ConfigurationError):
                    parse_condition(text)

    def test_age_band_needs_known_age(self) -> None:
        cond = parse_condition("age_max:12")
        self.assertFalse(cond.matches(_appointment(), None))
        self.assertFalse(cond.matches(_appointment(), ClientInfo("c", age=None)))
        self.assertTrue(cond.matches(_appointment(), ClientInfo("c", age=9)))


class TestCompileRules(unittest.TestCase):
    def test_sorted_descending_and_inactive_skipped(self) -> None:
        rules = compile_rules([
            _rule("low", "fallback", 10),
            _rule("off", "fallback", 50, is_active=False),
            _rule("high", "fallback", 90),
        ])
        self.assertEqual([r.name for r in rules], ["high", "low"])

    def test_duplicate_priority_raises(self) -> None:
        with self.assertRaises(ConfigurationError):
            compile_rules([_rule("a", "fallback", 10), _rule("b", "modality", 10)])

    def test_unknown_kind_or_override_raises(self) -> None:
        with self.assertRaises(ConfigurationError):
            compile_rules([_rule("a", "astrology", 10)])
        with self.assertRaises(ConfigurationError):
            compile_rules([_rule("a", "fallback", 10, override_level="absolute")])

    def test_bad_office_code_raises(self) -> None:
        with self.assertRaises(ConfigurationError):
            compile_rules([_rule("a", "fallback", 10, office_ids=["office four"])])

    def test_office_codes_normalized(self) -> None:
        (rule,) = compile_rules([_rule("a", "fallback", 10, office_ids=["b4", "C-C"])])
        self.assertEqual(rule.office_ids, ("B-4", "C-3"))


class TestAssignmentEngine(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = AssignmentEngine(_cascade())

    def test_mobility_beats_clinician_preference(self) -> None:
        client = ClientInfo("client-1", age=40, has_mobility_needs=True)
        result = self.engine.assign(_appointment(), client, CLINICIAN, CATALOG)
        self.assertEqual(result.office_id, "B-4")
        self.assertEqual(result.priority, 90)
        self.assertEqual(result.override, OverrideLevel.HARD)
        self.assertIn("Mobility needs", result.reason)

    def test_client_override(self) -> None:
        client = ClientInfo("client-1", age=40, has_mobility_needs=True, required_office="b5")
        result = self.engine.assign(_appointment(), client, CLINICIAN, CATALOG)
        self.assertEqual((result.office_id, result.priority), ("B-5", 100))

    def test_required_office_out_of_service_falls_through(self) -> None:
        client = ClientInfo("client-1", age=40, required_office="C-2")
        result = self.engine.assign(_appointment(), client, CLINICIAN, CATALOG)
        self.assertEqual(result.office_id, "B-3")

    def test_age_band_uses_office_age_groups(self) -> None:
        result = self.engine.assign(_appointment(), ClientInfo("client-1", age=8), CLINICIAN, CATALOG)
        self.assertEqual((result.office_id, result.priority), ("C-1", 80))

    def test_clinician_preference(self) -> None:
        result = self.engine.assign(_appointment(), ClientInfo("client-1", age=35), CLINICIAN, CATALOG)
        self.assertEqual((result.office_id, result.rule_name), ("B-3", "Clinician preferred"))

    def test_soft_match_collects_alternates(self) -> None:
        client = ClientInfo("client-1", age=35, has_sensory_needs=True, sensory_preferences=("quiet",))
        result = self.engine.assign(_appointment(), client, CLINICIAN, CATALOG)
        self.assertEqual(result.office_id, "B-4")
        self.assertEqual(result.override, OverrideLevel.SOFT)
        self.assertEqual(result.alternates, ("B-3",))

    def test_telehealth_goes_virtual(self) -> None:
        appt = _appointment(session_type=SessionType.TELEHEALTH)
        result = self.engine.assign(appt, ClientInfo("client-1", age=35), CLINICIAN, CATALOG)
        self.assertEqual(result.office_id, "A-v")

    def test_virtual_office_never_used_in_person(self) -> None:
        engine = AssignmentEngine(compile_rules([_rule("Anything", "fallback", 5)]))
        catalog = (OfficeInfo("A-v", is_virtual=True),)
        result = engine.assign(_appointment(), None, None, catalog)
        self.assertFalse(result.resolved)

    def test_exclusions_respected(self) -> None:
        result = self.engine.assign(
            _appointment(), ClientInfo("client-1", age=35), CLINICIAN, CATALOG, exclude={"B-3"},
        )
        self.assertEqual(result.office_id, "B-2")

    def test_no_match_is_unresolved(self) -> None:
        engine = AssignmentEngine(compile_rules([_rule("Telehealth", "modality", 10, "session_type:telehealth", ["A-v"])]))
        result = engine.assign(_appointment(), None, None, CATALOG)
        self.assertEqual(result.office_id, "TBD")
        self.assertFalse(result.resolved)

    def test_tie_break_prefers_clinician_owned_office(self) -> None:
        clinician = ClinicianInfo("clin-2")
        engine = AssignmentEngine(compile_rules([_rule("Anything", "fallback", 5)]))
        result = engine.assign(_appointment(clinician_id="clin-2"), None, clinician, CATALOG)
        self.assertEqual(result.office_id, "B-3")

    def test_deterministic(self) -> None:
        client = ClientInfo("client-1", age=35, has_sensory_needs=True, sensory_preferences=("quiet",))
        results = {self.engine.assign(_appointment(), client, CLINICIAN, CATALOG) for _ in range(5)}
        self.assertEqual(len(results), 1)
