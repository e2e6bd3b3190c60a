"""Domain models and errors for the matching core."""

from .exceptions import (
    InvalidTransition,
    MatchingError,
    TransitionError,
    Unauthorized,
    ValidationError,
)
from .models import (
    TERMINAL_STATUSES,
    Actor,
    ApplicantProfile,
    CustomCriterion,
    DisasterEventCriterion,
    EligibilityCriterion,
    FundingOpportunity,
    HouseholdSizeCriterion,
    IncomeCriterion,
    MalformedCriterion,
    MatchEvent,
    MatchStatus,
    NumericRange,
    OpportunityMatch,
    Role,
    StatusChange,
    ZipCodeCriterion,
    ZipCodeRange,
    parse_criteria,
    parse_opportunity,
)

__all__ = [
    "ApplicantProfile",
    "EligibilityCriterion",
    "ZipCodeCriterion",
    "ZipCodeRange",
    "IncomeCriterion",
    "NumericRange",
    "DisasterEventCriterion",
    "HouseholdSizeCriterion",
    "CustomCriterion",
    "MalformedCriterion",
    "FundingOpportunity",
    "OpportunityMatch",
    "MatchStatus",
    "TERMINAL_STATUSES",
    "StatusChange",
    "MatchEvent",
    "Actor",
    "Role",
    "parse_criteria",
    "parse_opportunity",
    "MatchingError",
    "ValidationError",
    "TransitionError",
    "InvalidTransition",
    "Unauthorized",
]
