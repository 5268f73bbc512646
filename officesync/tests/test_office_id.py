"""Unit tests for office-code normalization."""
from __future__ import annotations

import unittest

from officesync.orchestrator.office_id import (
    format_office_id,
    is_unresolved,
    is_valid_office_id,
    is_virtual_office,
    normalize_office_id,
)

_SAMPLES = [
    "B-4", "b4", " B 4 ", "B-D", "C-3", "c-c", "A-v", "av", "A-2", "A-b", "a-B",
    "TBD", "", "   ", "Z-1", "B-0", "B-", "-4", "B-44X", "office 4", "A-27", "A-AB", "B-12",
]


class TestNormalizeOfficeId(unittest.TestCase):
    def test_canonical_codes_unchanged(self) -> None:
        for code in ("B-4", "C-1", "A-b", "A-v", "B-12"):
            self.assertEqual(normalize_office_id(code), code)

    def test_loose_forms(self) -> None:
        self.assertEqual(normalize_office_id("b4"), "B-4")
        self.assertEqual(normalize_office_id(" B 4 "), "B-4")
        self.assertEqual(normalize_office_id("c-3"), "C-3")

    def test_letter_units_in_b_and_c_become_numbers(self) -> None:
        self.assertEqual(normalize_office_id("B-D"), "B-4")
        self.assertEqual(normalize_office_id("c-c"), "C-3")

    def test_numeric_units_in_a_become_letters(self) -> None:
        self.assertEqual(normalize_office_id("A-2"), "A-b")
        self.assertEqual(normalize_office_id("a-B"), "A-b")

    def test_virtual_office(self) -> None:
        self.assertEqual(normalize_office_id("av"), "A-v")
        self.assertTrue(is_virtual_office(normalize_office_id("A-V")))

    def test_malformed_input_is_unresolved(self) -> None:
        for raw in ("", "   ", "Z-1", "B-0", "B-", "-4", "B-44X", "office 4", "A-27", "A-AB", None, 42):
            with self.subTest(raw=raw):
                self.assertEqual(normalize_office_id(raw), "TBD")
                self.assertTrue(is_unresolved(normalize_office_id(raw)))

    def test_idempotent(self) -> None:
        for raw in _SAMPLES:
            with self.subTest(raw=raw):
                once = normalize_office_id(raw)
                self.assertEqual(normalize_office_id(once), once)

    def test_valid_office_id(self) -> None:
        self.assertTrue(is_valid_office_id("B-4"))
        self.assertFalse(is_valid_office_id("b4"))
        self.assertFalse(is_valid_office_id("TBD"))


class TestFormatOfficeId(unittest.TestCase):
    def test_labels(self) -> None:
        self.assertEqual(format_office_id("TBD"), "To Be Determined")
        self.assertEqual(format_office_id("A-v"), "Virtual Office")
        self.assertEqual(format_office_id("B-4"), "Building B, Ground Floor, Unit 4")
        self.assertEqual(format_office_id("C-1"), "Building C, Upper Floor, Unit 1")
