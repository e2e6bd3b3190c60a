"""Criterion evaluator: one eligibility rule against one applicant profile.

Evaluation is a pure function of its inputs. It never raises for the
content of a criterion: ranges with ``min > max``, empty range lists and
unreadable stored criteria all evaluate to "no match" and carry a warning
for display, so a single badly entered opportunity cannot break listing.
"""

import re
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type

from fundmatch.domain.models import (
    ApplicantProfile,
    CustomCriterion,
    DisasterEventCriterion,
    HouseholdSizeCriterion,
    IncomeCriterion,
    MalformedCriterion,
    NumericRange,
    ZipCodeCriterion,
    ZipCodeRange,
)

from .models import MatchResult

_ZIP_PLUS_FOUR = re.compile(r"^(\d{5})-\d{4}$")

MANUAL_REVIEW = "manual review required"


def evaluate(criterion, profile: ApplicantProfile, index: int = 0) -> MatchResult:
    """Evaluate one criterion against a profile.

    Args:
        criterion: Any EligibilityCriterion variant
        profile: Applicant snapshot
        index: Position of the criterion within its opportunity

    Returns:
        MatchResult describing the outcome
    """
    handler = _HANDLERS.get(type(criterion))
    if handler is None:
        return MatchResult(
            criterion_index=index,
            criterion_type=str(getattr(criterion, "type", "unknown")),
            matches=False,
            detail="unsupported criterion",
            warnings=[f"no evaluator for {type(criterion).__name__}"],
        )
    return handler(criterion, profile, index)


def normalize_postal_code(value: str) -> str:
    """Uppercase and trim a postal code; reduce ZIP+4 to its five-digit prefix."""
    cleaned = value.strip().upper()
    plus_four = _ZIP_PLUS_FOUR.match(cleaned)
    if plus_four:
        return plus_four.group(1)
    return cleaned


def _evaluate_zip_code(
    criterion: ZipCodeCriterion, profile: ApplicantProfile, index: int
) -> MatchResult:
    result = MatchResult(criterion_index=index, criterion_type=criterion.type, matches=False)

    if not criterion.ranges:
        result.detail = "no zip code ranges configured"
        result.warnings.append("criterion has no ranges; it matches nothing")
        return result

    if not profile.zip_code:
        result.detail = "zip code unknown"
        _collect_zip_warnings(criterion.ranges, result.warnings)
        return result

    zip_code = normalize_postal_code(profile.zip_code)
    for range_index, zip_range in enumerate(criterion.ranges):
        low = normalize_postal_code(zip_range.min) if zip_range.min else None
        high = normalize_postal_code(zip_range.max) if zip_range.max else None

        if _zip_range_inverted(low, high):
            result.warnings.append(_inverted_warning(range_index, low, high))
            continue

        if result.matches:
            continue

        if _zip_within(zip_code, low, high):
            result.matches = True
            result.matched_range = {"min": zip_range.min, "max": zip_range.max}

    if not result.matches:
        result.detail = "zip code outside all ranges"
    return result


def _collect_zip_warnings(ranges: Sequence[ZipCodeRange], warnings: List[str]) -> None:
    for range_index, zip_range in enumerate(ranges):
        low = normalize_postal_code(zip_range.min) if zip_range.min else None
        high = normalize_postal_code(zip_range.max) if zip_range.max else None
        if _zip_range_inverted(low, high):
            warnings.append(_inverted_warning(range_index, low, high))


def _numeric_bounds(*bounds: Optional[str]) -> bool:
    """True when every present bound is a digit string and all share one length."""
    present = [b for b in bounds if b is not None]
    return (
        bool(present)
        and all(b.isdigit() for b in present)
        and len({len(b) for b in present}) == 1
    )


def _zip_range_inverted(low: Optional[str], high: Optional[str]) -> bool:
    if low is None or high is None:
        return False
    if _numeric_bounds(low, high):
        return int(low) > int(high)
    return low > high


def _zip_within(zip_code: str, low: Optional[str], high: Optional[str]) -> bool:
    if _numeric_bounds(low, high) and zip_code.isdigit():
        value = int(zip_code)
        return (low is None or value >= int(low)) and (high is None or value <= int(high))
    return (low is None or zip_code >= low) and (high is None or zip_code <= high)


def _evaluate_income(
    criterion: IncomeCriterion, profile: ApplicantProfile, index: int
) -> MatchResult:
    return _evaluate_numeric(criterion.type, criterion.ranges, profile.annual_income, "income", index)


def _evaluate_household_size(
    criterion: HouseholdSizeCriterion, profile: ApplicantProfile, index: int
) -> MatchResult:
    return _evaluate_numeric(
        criterion.type, criterion.ranges, profile.household_size, "household size", index
    )


def _evaluate_numeric(
    criterion_type: str,
    ranges: Sequence[NumericRange],
    value: Optional[float],
    label: str,
    index: int,
) -> MatchResult:
    result = MatchResult(criterion_index=index, criterion_type=criterion_type, matches=False)

    if not ranges:
        result.detail = f"no {label} ranges configured"
        result.warnings.append("criterion has no ranges; it matches nothing")
        return result

    matched, warnings = _first_numeric_range(value, ranges)
    result.warnings.extend(warnings)

    if value is None:
        result.detail = f"{label} unknown"
    elif matched is None:
        result.detail = f"{label} outside all ranges"
    else:
        result.matches = True
        result.matched_range = {"min": matched.min, "max": matched.max}
    return result


def _first_numeric_range(
    value: Optional[float], ranges: Sequence[NumericRange]
) -> Tuple[Optional[NumericRange], List[str]]:
    """Return the first range containing value, plus warnings for inverted ranges."""
    matched = None
    warnings = []
    for range_index, numeric_range in enumerate(ranges):
        low, high = numeric_range.min, numeric_range.max
        if low is not None and high is not None and low > high:
            warnings.append(_inverted_warning(range_index, low, high))
            continue
        if matched is not None or value is None:
            continue
        if (low is None or value >= low) and (high is None or value <= high):
            matched = numeric_range
    return matched, warnings


def _evaluate_disaster_event(
    criterion: DisasterEventCriterion, profile: ApplicantProfile, index: int
) -> MatchResult:
    result = MatchResult(criterion_index=index, criterion_type=criterion.type, matches=False)

    if not criterion.events:
        result.detail = "no disaster events configured"
        result.warnings.append("criterion lists no events; it matches nothing")
        return result

    experienced = {event.lower() for event in profile.disaster_events}
    shared = [event for event in criterion.events if event.lower() in experienced]

    if shared:
        result.matches = True
        result.matched_events = shared
    else:
        result.detail = "no qualifying disaster event"
    return result


def _evaluate_custom(
    criterion: CustomCriterion, profile: ApplicantProfile, index: int
) -> MatchResult:
    return MatchResult(
        criterion_index=index,
        criterion_type=criterion.type,
        matches=False,
        detail=MANUAL_REVIEW,
        counts_toward_score=False,
    )


def _evaluate_malformed(
    criterion: MalformedCriterion, profile: ApplicantProfile, index: int
) -> MatchResult:
    return MatchResult(
        criterion_index=index,
        criterion_type=criterion.type,
        matches=False,
        detail="criterion could not be read",
        warnings=[criterion.error or "unreadable criterion"],
    )


def _inverted_warning(range_index: int, low, high) -> str:
    return f"range {range_index} has min greater than max ({low} > {high}); it matches nothing"


_HANDLERS: Dict[Type, Callable[..., MatchResult]] = {
    ZipCodeCriterion: _evaluate_zip_code,
    IncomeCriterion: _evaluate_income,
    DisasterEventCriterion: _evaluate_disaster_event,
    HouseholdSizeCriterion: _evaluate_household_size,
    CustomCriterion: _evaluate_custom,
    MalformedCriterion: _evaluate_malformed,
}
