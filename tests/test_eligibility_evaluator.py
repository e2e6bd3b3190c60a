"""Unit tests for the criterion evaluator.

Covers each criterion kind, inclusive range bounds, open-ended ranges,
inverted and empty ranges, unknown applicant data and postal code handling.
"""

import pytest

from fundmatch.domain.models import (
    ApplicantProfile,
    CustomCriterion,
    DisasterEventCriterion,
    HouseholdSizeCriterion,
    IncomeCriterion,
    MalformedCriterion,
    ZipCodeCriterion,
)
from fundmatch.eligibility import MANUAL_REVIEW, evaluate, normalize_postal_code


def make_profile(**overrides):
    fields = {
        "survivor_id": 7,
        "zip_code": "12345",
        "annual_income": 40000,
        "household_size": 4,
        "disaster_events": ["Hurricane Helene"],
    }
    fields.update(overrides)
    return ApplicantProfile(**fields)


class TestZipCodeCriterion:
    """Tests for postal code ranges."""

    @pytest.mark.parametrize("zip_code", ["10000", "15000", "19999"])
    def test_bounds_are_inclusive(self, zip_code):
        criterion = ZipCodeCriterion(ranges=[{"min": "10000", "max": "19999"}])

        result = evaluate(criterion, make_profile(zip_code=zip_code))

        assert result.matches is True
        assert result.matched_range == {"min": "10000", "max": "19999"}
        assert result.detail is None

    @pytest.mark.parametrize("zip_code", ["09999", "20000"])
    def test_outside_range(self, zip_code):
        criterion = ZipCodeCriterion(ranges=[{"min": "10000", "max": "19999"}])

        result = evaluate(criterion, make_profile(zip_code=zip_code))

        assert result.matches is False
        assert result.detail == "zip code outside all ranges"
        assert result.matched_range is None

    def test_reports_first_matching_range(self):
        criterion = ZipCodeCriterion(
            ranges=[
                {"min": "90000", "max": "90999"},
                {"min": "12000", "max": "12999"},
                {"min": "12300", "max": "12399"},
            ]
        )

        result = evaluate(criterion, make_profile(zip_code="12345"))

        assert result.matches is True
        assert result.matched_range == {"min": "12000", "max": "12999"}

    def test_zip_plus_four_uses_five_digit_prefix(self):
        criterion = ZipCodeCriterion(ranges=[{"min": "12000", "max": "12999"}])

        result = evaluate(criterion, make_profile(zip_code="12345-6789"))

        assert result.matches is True

    def test_missing_bounds_are_open(self):
        at_least = ZipCodeCriterion(ranges=[{"min": "90000"}])
        at_most = ZipCodeCriterion(ranges=[{"max": "20000"}])

        assert evaluate(at_least, make_profile(zip_code="95000")).matches is True
        assert evaluate(at_least, make_profile(zip_code="12345")).matches is False
        assert evaluate(at_most, make_profile(zip_code="12345")).matches is True

    def test_non_numeric_codes_compare_lexicographically(self):
        criterion = ZipCodeCriterion(ranges=[{"min": "k0a", "max": "K9Z"}])

        assert evaluate(criterion, make_profile(zip_code="K1A 0B1")).matches is True
        assert evaluate(criterion, make_profile(zip_code="M5V 2T6")).matches is False

    def test_integer_bounds_are_accepted(self):
        criterion = ZipCodeCriterion.model_validate({"ranges": [{"min": 12000, "max": 12999}]})

        result = evaluate(criterion, make_profile(zip_code="12345"))

        assert result.matches is True

    def test_inverted_range_matches_nothing_and_warns(self):
        criterion = ZipCodeCriterion(
            ranges=[{"min": "20000", "max": "10000"}, {"min": "30000", "max": "39999"}]
        )

        result = evaluate(criterion, make_profile(zip_code="15000"))

        assert result.matches is False
        assert len(result.warnings) == 1
        assert "min greater than max" in result.warnings[0]

    def test_inverted_range_does_not_block_later_ranges(self):
        criterion = ZipCodeCriterion(
            ranges=[{"min": "20000", "max": "10000"}, {"min": "12000", "max": "12999"}]
        )

        result = evaluate(criterion, make_profile(zip_code="12345"))

        assert result.matches is True
        assert len(result.warnings) == 1

    def test_empty_ranges_match_nothing(self):
        result = evaluate(ZipCodeCriterion(ranges=[]), make_profile())

        assert result.matches is False
        assert result.warnings

    def test_unknown_zip(self):
        criterion = ZipCodeCriterion(ranges=[{"min": "10000", "max": "19999"}])

        result = evaluate(criterion, make_profile(zip_code=None))

        assert result.matches is False
        assert result.detail == "zip code unknown"

    def test_normalize_postal_code(self):
        assert normalize_postal_code(" 12345-6789 ") == "12345"
        assert normalize_postal_code("k1a 0b1") == "K1A 0B1"
        assert normalize_postal_code("12345") == "12345"


class TestIncomeCriterion:
    """Tests for income ranges."""

    def test_income_within_range(self):
        criterion = IncomeCriterion(ranges=[{"min": 0, "max": 50000}])

        result = evaluate(criterion, make_profile(annual_income=40000))

        assert result.matches is True
        assert result.matched_range == {"min": 0, "max": 50000}

    @pytest.mark.parametrize("income", [0, 50000])
    def test_bounds_are_inclusive(self, income):
        criterion = IncomeCriterion(ranges=[{"min": 0, "max": 50000}])

        assert evaluate(criterion, make_profile(annual_income=income)).matches is True

    def test_income_above_range(self):
        criterion = IncomeCriterion(ranges=[{"min": 0, "max": 50000}])

        result = evaluate(criterion, make_profile(annual_income=60000))

        assert result.matches is False
        assert result.detail == "income outside all ranges"

    def test_unknown_income_does_not_match(self):
        criterion = IncomeCriterion(ranges=[{"min": 0, "max": 50000}])

        result = evaluate(criterion, make_profile(annual_income=None))

        assert result.matches is False
        assert result.detail == "income unknown"
        assert result.counts_toward_score is True

    def test_open_upper_bound(self):
        criterion = IncomeCriterion(ranges=[{"min": 100000}])

        assert evaluate(criterion, make_profile(annual_income=250000)).matches is True
        assert evaluate(criterion, make_profile(annual_income=99999.99)).matches is False

    def test_form_key_is_accepted(self):
        criterion = IncomeCriterion.model_validate({"incomeRanges": [{"min": 0, "max": 50000}]})

        assert evaluate(criterion, make_profile()).matches is True

    def test_inverted_range_warns(self):
        criterion = IncomeCriterion(ranges=[{"min": 50000, "max": 0}])

        result = evaluate(criterion, make_profile(annual_income=40000))

        assert result.matches is False
        assert "min greater than max" in result.warnings[0]

    @pytest.mark.parametrize("income", [0, 40000, 2500000])
    def test_range_without_bounds_excludes_nobody(self, income):
        criterion = IncomeCriterion(ranges=[{}])

        result = evaluate(criterion, make_profile(annual_income=income))

        assert result.matches is True
        assert result.warnings == []


class TestHouseholdSizeCriterion:
    """Tests for household size ranges."""

    def test_size_within_range(self):
        criterion = HouseholdSizeCriterion(ranges=[{"min": 2, "max": 6}])

        result = evaluate(criterion, make_profile(household_size=4))

        assert result.matches is True
        assert result.criterion_type == "householdSize"

    def test_single_person_household(self):
        criterion = HouseholdSizeCriterion.model_validate({"sizeRanges": [{"min": 2, "max": 6}]})

        result = evaluate(criterion, make_profile(household_size=1))

        assert result.matches is False
        assert result.detail == "household size outside all ranges"

    def test_empty_ranges_match_nothing(self):
        result = evaluate(HouseholdSizeCriterion(), make_profile())

        assert result.matches is False
        assert result.warnings


class TestDisasterEventCriterion:
    """Tests for disaster event membership."""

    def test_shared_event_matches_case_insensitively(self):
        criterion = DisasterEventCriterion(events=["hurricane helene", "Wildfire 2024"])

        result = evaluate(criterion, make_profile(disaster_events=["Hurricane Helene"]))

        assert result.matches is True
        assert result.matched_events == ["hurricane helene"]

    def test_no_shared_event(self):
        criterion = DisasterEventCriterion(events=["Wildfire 2024"])

        result = evaluate(criterion, make_profile())

        assert result.matches is False
        assert result.detail == "no qualifying disaster event"

    def test_applicant_without_events(self):
        criterion = DisasterEventCriterion(events=["Wildfire 2024"])

        assert evaluate(criterion, make_profile(disaster_events=[])).matches is False

    def test_empty_event_list_matches_nothing(self):
        result = evaluate(DisasterEventCriterion(events=[]), make_profile())

        assert result.matches is False
        assert result.warnings


class TestCustomAndMalformedCriteria:
    """Tests for criteria that are displayed but cannot be checked automatically."""

    def test_custom_requires_manual_review(self):
        criterion = CustomCriterion(name="Homeowner", description="Must own the home", value="yes")

        result = evaluate(criterion, make_profile())

        assert result.matches is False
        assert result.detail == MANUAL_REVIEW
        assert result.counts_toward_score is False
        assert result.needs_manual_review is True

    def test_malformed_counts_as_unmatched(self):
        criterion = MalformedCriterion(raw={"type": "age"}, error="unknown type 'age'")

        result = evaluate(criterion, make_profile())

        assert result.matches is False
        assert result.counts_toward_score is True
        assert result.warnings == ["unknown type 'age'"]


class TestEvaluatorProperties:
    """Tests for properties that hold for every criterion."""

    def test_evaluation_is_deterministic(self):
        criterion = IncomeCriterion(ranges=[{"min": 0, "max": 50000}, {"min": 80000}])
        profile = make_profile(annual_income=90000)

        assert evaluate(criterion, profile) == evaluate(criterion, profile)

    def test_index_is_recorded(self):
        result = evaluate(HouseholdSizeCriterion(ranges=[{"min": 1}]), make_profile(), index=3)

        assert result.criterion_index == 3
        assert result.to_dict()["index"] == 3

    def test_to_dict_is_json_ready(self):
        criterion = DisasterEventCriterion(events=["Hurricane Helene"])

        detail = evaluate(criterion, make_profile()).to_dict()

        assert detail == {
            "index": 0,
            "type": "disasterEvent",
            "matches": True,
            "detail": None,
            "matched_range": None,
            "matched_events": ["Hurricane Helene"],
            "warnings": [],
            "scored": True,
        }
