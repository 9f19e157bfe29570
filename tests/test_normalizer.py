"""
Tests for requirement normalisation — pipeline/normalizer.py

Covers the vocabulary used by the API and the open dataset, the first-match
ordering between categories, and the degrade-to-unknown behaviour.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.models import LookupResult, Requirement
from pipeline.normalizer import normalize_lookup, normalize_requirement, parse_duration


# ── normalize_requirement ─────────────────────────────────────────────────────

class TestNormalizeRequirement:
    @pytest.mark.parametrize("text", ["visa free", "Visa-Free", "FREE", " visa exempt ",
                                      "Visa not required", "freedom of movement"])
    def test_visa_free(self, text):
        assert normalize_requirement(text) == (Requirement.VISA_FREE, None)

    @pytest.mark.parametrize("text", ["VOA", "visa on arrival", "Visa on Arrival (30 days)"])
    def test_visa_on_arrival(self, text):
        assert normalize_requirement(text)[0] == Requirement.VISA_ON_ARRIVAL

    @pytest.mark.parametrize("text", ["e-Visa", "eVisa", "electronic visa"])
    def test_e_visa(self, text):
        assert normalize_requirement(text)[0] == Requirement.E_VISA

    @pytest.mark.parametrize("text", ["ETA", "ESTA", "Electronic Travel Authorization",
                                      "travel authorisation"])
    def test_eta(self, text):
        assert normalize_requirement(text)[0] == Requirement.ETA

    @pytest.mark.parametrize("text", ["visa required", "Visa-Required", "required", "visa"])
    def test_visa_required(self, text):
        assert normalize_requirement(text)[0] == Requirement.VISA_REQUIRED

    def test_numeric_means_visa_free_days(self):
        assert normalize_requirement("90") == (Requirement.VISA_FREE, 90)
        assert normalize_requirement(" 180 ") == (Requirement.VISA_FREE, 180)

    def test_json_integer_means_visa_free_days(self):
        assert normalize_requirement(90) == (Requirement.VISA_FREE, 90)
        assert normalize_requirement(0) == (Requirement.VISA_FREE, 0)

    @pytest.mark.parametrize("text", ["", "   ", "covid ban", "-1", "no admission",
                                      None, -1, True, 4.5])
    def test_unrecognised_is_unknown(self, text):
        assert normalize_requirement(text) == (Requirement.UNKNOWN, None)

    def test_e_visa_wins_over_generic_visa(self):
        """'e-visa required' mentions both; the more specific category is checked first."""
        assert normalize_requirement("e-visa required")[0] == Requirement.E_VISA

    def test_visa_free_wins_over_required(self):
        assert normalize_requirement("visa not required")[0] == Requirement.VISA_FREE

    def test_deterministic(self):
        results = {normalize_requirement("Visa on arrival") for _ in range(5)}
        assert len(results) == 1


# ── parse_duration ────────────────────────────────────────────────────────────

class TestParseDuration:
    def test_int(self):
        assert parse_duration(30) == 30

    def test_string_with_unit(self):
        assert parse_duration("90 days") == 90

    def test_float(self):
        assert parse_duration(14.0) == 14

    @pytest.mark.parametrize("value", [None, -5, "n/a", "", True, [90]])
    def test_invalid(self, value):
        assert parse_duration(value) is None


# ── normalize_lookup ──────────────────────────────────────────────────────────

class TestNormalizeLookup:
    def test_builds_record(self):
        result = LookupResult.ok("Visa free", duration="90 days", notes="Passport valid 6 months")
        record = normalize_lookup(result, checked_at="2026-03-01T12:00:00.000Z", source="rapidapi")
        assert record.requirement == Requirement.VISA_FREE
        assert record.duration == 90
        assert record.notes == "Passport valid 6 months"
        assert record.last_checked == "2026-03-01T12:00:00.000Z"
        assert record.source == "rapidapi"
        assert record.is_good

    def test_numeric_text_supplies_duration(self):
        record = normalize_lookup(LookupResult.ok("30"))
        assert (record.requirement, record.duration) == (Requirement.VISA_FREE, 30)

    def test_integer_requirement_from_api(self):
        record = normalize_lookup(LookupResult.ok(90))
        assert (record.requirement, record.duration) == (Requirement.VISA_FREE, 90)
        assert record.is_good

    def test_explicit_duration_beats_numeric_text(self):
        record = normalize_lookup(LookupResult.ok("30", duration=60))
        assert record.duration == 60

    def test_blank_notes_dropped(self):
        record = normalize_lookup(LookupResult.ok("eta", notes="  "))
        assert record.notes is None

    def test_unknown_record_is_not_good(self):
        record = normalize_lookup(LookupResult.ok("something odd"))
        assert record.requirement == Requirement.UNKNOWN
        assert not record.is_good
