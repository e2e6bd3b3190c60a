"""Core domain models for applicants, funding opportunities and matches.

This module defines the data structures shared by every layer:
- ApplicantProfile: the survivor snapshot matched against eligibility rules
- EligibilityCriterion: tagged union of the five criterion kinds
- FundingOpportunity: a funding program and its eligibility criteria
- OpportunityMatch: the evaluated relationship and status history for one
  (opportunity, survivor) pair
- Actor / Role: who is asking for a status change
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationInfo, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from fundmatch.utils.timestamps import ensure_utc, utc_now

from .exceptions import ValidationError


# ---------------------------------------------------------------------------
# Applicant
# ---------------------------------------------------------------------------


class ApplicantProfile(BaseModel):
    """Immutable snapshot of an applicant taken at evaluation time."""

    survivor_id: int = Field(..., description="User id of the survivor")
    zip_code: Optional[str] = Field(None, description="Postal code of the damaged property")
    annual_income: Optional[float] = Field(
        None, ge=0, description="Annual household income; None when not reported"
    )
    household_size: int = Field(1, ge=1, description="Number of household members")
    disaster_events: FrozenSet[str] = Field(
        default_factory=frozenset, description="Disaster events the household experienced"
    )
    custom_attributes: Dict[str, str] = Field(default_factory=dict)

    @field_validator("zip_code")
    @classmethod
    def strip_zip_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    @field_validator("disaster_events", mode="before")
    @classmethod
    def clean_events(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        return frozenset(e.strip() for e in v if isinstance(e, str) and e.strip())

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Eligibility criteria
# ---------------------------------------------------------------------------


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class ZipCodeRange(BaseModel):
    """Inclusive postal code range; a missing bound is open on that side."""

    min: Optional[str] = None
    max: Optional[str] = None

    @field_validator("min", "max", mode="before")
    @classmethod
    def coerce_bound(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v

    model_config = {"extra": "forbid", "frozen": True}


class NumericRange(BaseModel):
    """Inclusive numeric range; a missing bound is open on that side."""

    min: Optional[float] = None
    max: Optional[float] = None

    @field_validator("min", "max", mode="before")
    @classmethod
    def coerce_bound(cls, v: Any) -> Any:
        return _blank_to_none(v)

    model_config = {"extra": "forbid", "frozen": True}


class _CriterionBase(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}


def _rename_key(data: Any, legacy_key: str, key: str = "ranges") -> Any:
    """Accept the per-type range key used by the opportunity form."""
    if isinstance(data, dict) and legacy_key in data:
        data = dict(data)
        legacy = data.pop(legacy_key)
        data.setdefault(key, legacy)
    return data


class ZipCodeCriterion(_CriterionBase):
    type: Literal["zipCode"] = "zipCode"
    ranges: List[ZipCodeRange] = Field(default_factory=list)


class IncomeCriterion(_CriterionBase):
    type: Literal["income"] = "income"
    ranges: List[NumericRange] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_income_ranges(cls, data: Any) -> Any:
        return _rename_key(data, "incomeRanges")


class DisasterEventCriterion(_CriterionBase):
    type: Literal["disasterEvent"] = "disasterEvent"
    events: List[str] = Field(default_factory=list)

    @field_validator("events")
    @classmethod
    def strip_events(cls, v: List[str]) -> List[str]:
        cleaned: List[str] = []
        for event in v:
            event = event.strip()
            if event and event not in cleaned:
                cleaned.append(event)
        return cleaned


class HouseholdSizeCriterion(_CriterionBase):
    type: Literal["householdSize"] = "householdSize"
    ranges: List[NumericRange] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_size_ranges(cls, data: Any) -> Any:
        return _rename_key(data, "sizeRanges")


class CustomCriterion(_CriterionBase):
    """Free-form rule that only a person can check."""

    type: Literal["custom"] = "custom"
    name: str = ""
    description: str = ""
    value: str = ""

    @model_validator(mode="before")
    @classmethod
    def accept_tag_form(cls, data: Any) -> Any:
        # Older rows stored custom rules as {"key": ..., "values": [...]}
        if isinstance(data, dict) and ("key" in data or "values" in data):
            data = dict(data)
            key = data.pop("key", None)
            values = data.pop("values", None)
            if key is not None:
                data.setdefault("name", str(key))
            if values is not None:
                data.setdefault(
                    "value", ", ".join(str(v) for v in values) if isinstance(values, list) else str(values)
                )
        return data


class MalformedCriterion(_CriterionBase):
    """Stand-in for a stored criterion that could not be parsed.

    Never authored directly; produced by lenient parsing so one bad row does
    not break opportunity listing.
    """

    type: Literal["malformed"] = "malformed"
    raw: Any = None
    error: str = ""


EligibilityCriterion = Annotated[
    Union[
        ZipCodeCriterion,
        IncomeCriterion,
        DisasterEventCriterion,
        HouseholdSizeCriterion,
        CustomCriterion,
        MalformedCriterion,
    ],
    Field(discriminator="type"),
]

_criterion_adapter = TypeAdapter(EligibilityCriterion)


def parse_criteria(raw: Any, strict: bool = True) -> List[Any]:
    """Parse stored or submitted eligibility criteria.

    Accepts a list of dicts or criterion models, a JSON string holding such
    a list, None, or the empty object ``{}`` that older rows default to.

    Args:
        raw: Criteria in any of the accepted shapes
        strict: Raise on the first bad entry instead of substituting a
            MalformedCriterion

    Returns:
        List of criterion models, in input order

    Raises:
        ValidationError: In strict mode, if any entry is malformed
    """
    if raw is None or raw == {} or raw == "":
        return []

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            if strict:
                raise ValidationError("Eligibility criteria are not valid JSON", [str(e)]) from e
            return [MalformedCriterion(raw=raw, error=f"invalid JSON: {e}")]
        if raw is None or raw == {}:
            return []

    if not isinstance(raw, list):
        if strict:
            raise ValidationError(
                "Eligibility criteria must be a list", [f"got {type(raw).__name__}"]
            )
        return [MalformedCriterion(raw=raw, error="criteria must be a list")]

    criteria: List[Any] = []
    for index, item in enumerate(raw):
        if isinstance(item, _CriterionBase):
            if strict and isinstance(item, MalformedCriterion):
                raise ValidationError(f"Eligibility criterion {index} is malformed", [item.error])
            criteria.append(item)
            continue

        if strict and isinstance(item, dict) and item.get("type") == "malformed":
            raise ValidationError(f"Eligibility criterion {index} has an unknown type", ["malformed"])

        try:
            criteria.append(_criterion_adapter.validate_python(item))
        except PydanticValidationError as e:
            messages = [
                f"{'.'.join(str(loc) for loc in err['loc']) or 'criterion'}: {err['msg']}"
                for err in e.errors()
            ]
            if strict:
                raise ValidationError(f"Eligibility criterion {index} is invalid", messages) from e
            criteria.append(MalformedCriterion(raw=item, error="; ".join(messages)))

    return criteria


# ---------------------------------------------------------------------------
# Funding opportunity
# ---------------------------------------------------------------------------


class FundingOpportunity(BaseModel):
    """A funding program with ordered eligibility criteria.

    Criteria order is kept for display and has no effect on evaluation.
    """

    id: int = Field(..., description="Opportunity id")
    name: str = Field(..., min_length=1)
    description: str = ""
    status: str = Field("active", description="active, inactive or closed")
    organization_id: Optional[int] = None
    award_amount: Optional[Decimal] = Field(None, ge=0)
    criteria: List[EligibilityCriterion] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("criteria", mode="before")
    @classmethod
    def parse_raw_criteria(cls, v: Any, info: ValidationInfo) -> Any:
        lenient = bool(info.context and info.context.get("lenient_criteria"))
        return parse_criteria(v, strict=not lenient)


def parse_opportunity(data: Dict[str, Any], lenient_criteria: bool = False) -> FundingOpportunity:
    """Validate submitted or stored opportunity data.

    Args:
        data: Raw opportunity fields
        lenient_criteria: Replace bad criteria with MalformedCriterion
            instead of failing

    Raises:
        ValidationError: If the data does not describe a valid opportunity
    """
    try:
        return FundingOpportunity.model_validate(
            data, context={"lenient_criteria": lenient_criteria}
        )
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid funding opportunity",
            [
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ],
        ) from e


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """User roles known to the workflow."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    CASE_MANAGER = "case_manager"
    USER = "user"


class Actor(BaseModel):
    """The user requesting a workflow action, with a resolved role."""

    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


class MatchStatus(str, Enum):
    """Status of an opportunity match."""

    PENDING = "pending"
    NOTIFIED = "notified"
    APPLIED = "applied"
    AWARDED = "awarded"
    FUNDED = "funded"
    REJECTED = "rejected"
    ARCHIVED = "archived"

    @classmethod
    def _missing_(cls, value: object):
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower()
        # "approved" predates "awarded" in stored rows
        if cleaned == "approved":
            return cls.AWARDED
        for member in cls:
            if member.value == cleaned:
                return member
        return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({MatchStatus.FUNDED, MatchStatus.REJECTED, MatchStatus.ARCHIVED})


class StatusChange(BaseModel):
    """One entry in a match's status history."""

    from_status: MatchStatus
    to_status: MatchStatus
    event: str
    actor_id: Optional[int] = None
    occurred_at: datetime

    @field_validator("occurred_at")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class OpportunityMatch(BaseModel):
    """Evaluated relationship between one applicant and one opportunity.

    Uniquely keyed by (opportunity_id, survivor_id). The status only changes
    through the application state machine; rescoring updates the score and
    per-criterion detail but never the status or its history.
    """

    opportunity_id: int
    survivor_id: int
    match_score: int = Field(..., ge=0, le=100)
    match_criteria: List[Dict[str, Any]] = Field(
        default_factory=list, description="Per-criterion evaluation detail"
    )
    status: MatchStatus = MatchStatus.PENDING
    notes: Optional[str] = None
    award_amount: Optional[Decimal] = Field(None, ge=0)

    applied_at: Optional[datetime] = None
    applied_by_id: Optional[int] = None
    awarded_at: Optional[datetime] = None
    awarded_by_id: Optional[int] = None
    funded_at: Optional[datetime] = None
    funded_by_id: Optional[int] = None
    archived_from: Optional[MatchStatus] = None
    status_history: List[StatusChange] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_checked_at: datetime = Field(default_factory=utc_now)

    @field_validator(
        "applied_at", "awarded_at", "funded_at", "created_at", "updated_at", "last_checked_at"
    )
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def key(self) -> tuple:
        return (self.opportunity_id, self.survivor_id)

    model_config = {"json_schema_extra": {"example": {
        "opportunity_id": 12,
        "survivor_id": 340,
        "match_score": 50,
        "match_criteria": [
            {"index": 0, "type": "income", "matches": False, "detail": "income outside all ranges"},
            {"index": 1, "type": "householdSize", "matches": True,
             "matched_range": {"min": 2, "max": 6}},
        ],
        "status": "pending",
    }}}


class MatchEvent(BaseModel):
    """Fact emitted after a transition has been committed.

    ``kind`` is the status the match moved into; a ``funded`` event is what
    the capital-stack ledger records as a new capital source.
    """

    kind: str
    event: str
    match: OpportunityMatch
    actor_id: Optional[int] = None
    occurred_at: datetime = Field(default_factory=utc_now)
