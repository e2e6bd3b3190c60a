"""Database schema definition and ORM models.

Timestamps are stored as ISO 8601 UTC strings and money as decimal
strings. Criteria, per-criterion detail and status history are JSON.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, Float, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from fundmatch.domain.models import (
    ApplicantProfile,
    FundingOpportunity,
    MalformedCriterion,
    MatchStatus,
    OpportunityMatch,
    StatusChange,
)
from fundmatch.utils.timestamps import format_timestamp, parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)

Base = declarative_base()


class FundingOpportunityModel(Base):
    """ORM model for funding_opportunities table."""

    __tablename__ = "funding_opportunities"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="active")
    organization_id = Column(Integer, nullable=True)
    award_amount = Column(String(40), nullable=True)
    eligibility_criteria = Column(JSON, nullable=False, default=list)

    __table_args__ = (Index("idx_opportunities_status", "status"),)

    def to_domain(self) -> FundingOpportunity:
        """Convert to the domain model.

        Stored criteria are parsed leniently: an entry that no longer
        validates becomes a MalformedCriterion instead of failing the read.
        """
        return FundingOpportunity.model_validate(
            {
                "id": self.id,
                "name": self.name,
                "description": self.description or "",
                "status": self.status,
                "organization_id": self.organization_id,
                "award_amount": _parse_decimal(self.award_amount),
                "criteria": self.eligibility_criteria,
            },
            context={"lenient_criteria": True},
        )

    @classmethod
    def from_domain(cls, opportunity: FundingOpportunity) -> "FundingOpportunityModel":
        return cls(**opportunity_columns(opportunity))


def opportunity_columns(opportunity: FundingOpportunity) -> Dict[str, Any]:
    return {
        "id": opportunity.id,
        "name": opportunity.name,
        "description": opportunity.description,
        "status": opportunity.status,
        "organization_id": opportunity.organization_id,
        "award_amount": _format_decimal(opportunity.award_amount),
        "eligibility_criteria": _dump_criteria(opportunity.criteria),
    }


def _dump_criteria(criteria: List[Any]) -> List[Any]:
    dumped = []
    for criterion in criteria:
        # Unreadable rows go back exactly as they were read
        if isinstance(criterion, MalformedCriterion):
            dumped.append(criterion.raw)
        else:
            dumped.append(criterion.model_dump(mode="json"))
    return dumped


class ApplicantProfileModel(Base):
    """ORM model for applicant_profiles table."""

    __tablename__ = "applicant_profiles"

    survivor_id = Column(Integer, primary_key=True, autoincrement=False)
    zip_code = Column(String(20), nullable=True)
    annual_income = Column(Float, nullable=True)
    household_size = Column(Integer, nullable=False, default=1)
    disaster_events = Column(JSON, nullable=False, default=list)
    custom_attributes = Column(JSON, nullable=False, default=dict)
    updated_at = Column(String(50), nullable=False)

    def to_domain(self) -> ApplicantProfile:
        return ApplicantProfile(
            survivor_id=self.survivor_id,
            zip_code=self.zip_code,
            annual_income=self.annual_income,
            household_size=self.household_size or 1,
            disaster_events=self.disaster_events or [],
            custom_attributes=self.custom_attributes or {},
        )

    @classmethod
    def from_domain(cls, profile: ApplicantProfile) -> "ApplicantProfileModel":
        return cls(**profile_columns(profile))


def profile_columns(profile: ApplicantProfile) -> Dict[str, Any]:
    return {
        "survivor_id": profile.survivor_id,
        "zip_code": profile.zip_code,
        "annual_income": profile.annual_income,
        "household_size": profile.household_size,
        "disaster_events": sorted(profile.disaster_events),
        "custom_attributes": dict(profile.custom_attributes),
        "updated_at": format_timestamp(utc_now()),
    }


class OpportunityMatchModel(Base):
    """ORM model for opportunity_matches table.

    The composite primary key allows at most one match per
    (opportunity, survivor) pair.
    """

    __tablename__ = "opportunity_matches"

    opportunity_id = Column(Integer, primary_key=True, autoincrement=False)
    survivor_id = Column(Integer, primary_key=True, autoincrement=False)

    match_score = Column(Integer, nullable=False)
    match_criteria = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=MatchStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    award_amount = Column(String(40), nullable=True)

    applied_at = Column(String(50), nullable=True)
    applied_by_id = Column(Integer, nullable=True)
    awarded_at = Column(String(50), nullable=True)
    awarded_by_id = Column(Integer, nullable=True)
    funded_at = Column(String(50), nullable=True)
    funded_by_id = Column(Integer, nullable=True)
    archived_from = Column(String(20), nullable=True)
    status_history = Column(JSON, nullable=False, default=list)

    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)
    last_checked_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_matches_survivor", "survivor_id"),
        Index("idx_matches_status", "status"),
        Index("idx_matches_score", "match_score"),
    )

    def to_domain(self) -> OpportunityMatch:
        return OpportunityMatch(
            opportunity_id=self.opportunity_id,
            survivor_id=self.survivor_id,
            match_score=self.match_score,
            match_criteria=_load_detail(self.match_criteria),
            status=MatchStatus(self.status),
            notes=self.notes,
            award_amount=_parse_decimal(self.award_amount),
            applied_at=parse_iso_datetime(self.applied_at),
            applied_by_id=self.applied_by_id,
            awarded_at=parse_iso_datetime(self.awarded_at),
            awarded_by_id=self.awarded_by_id,
            funded_at=parse_iso_datetime(self.funded_at),
            funded_by_id=self.funded_by_id,
            archived_from=MatchStatus(self.archived_from) if self.archived_from else None,
            status_history=[StatusChange.model_validate(h) for h in self.status_history or []],
            created_at=parse_iso_datetime(self.created_at) or utc_now(),
            updated_at=parse_iso_datetime(self.updated_at) or utc_now(),
            last_checked_at=parse_iso_datetime(self.last_checked_at) or utc_now(),
        )

    @classmethod
    def from_domain(cls, match: OpportunityMatch) -> "OpportunityMatchModel":
        return cls(**match_columns(match))


SCORE_COLUMNS = frozenset({"match_score", "match_criteria", "last_checked_at", "updated_at"})

WORKFLOW_COLUMNS = frozenset({
    "status",
    "notes",
    "award_amount",
    "applied_at",
    "applied_by_id",
    "awarded_at",
    "awarded_by_id",
    "funded_at",
    "funded_by_id",
    "archived_from",
    "status_history",
    "updated_at",
})

NOTES_COLUMNS = frozenset({"notes", "updated_at"})


def match_columns(match: OpportunityMatch) -> Dict[str, Any]:
    """Column values for a match, shared by inserts and conditional updates."""
    return {
        "opportunity_id": match.opportunity_id,
        "survivor_id": match.survivor_id,
        "match_score": match.match_score,
        "match_criteria": list(match.match_criteria),
        "status": match.status.value,
        "notes": match.notes,
        "award_amount": _format_decimal(match.award_amount),
        "applied_at": format_timestamp(match.applied_at),
        "applied_by_id": match.applied_by_id,
        "awarded_at": format_timestamp(match.awarded_at),
        "awarded_by_id": match.awarded_by_id,
        "funded_at": format_timestamp(match.funded_at),
        "funded_by_id": match.funded_by_id,
        "archived_from": match.archived_from.value if match.archived_from else None,
        "status_history": [h.model_dump(mode="json") for h in match.status_history],
        "created_at": format_timestamp(match.created_at),
        "updated_at": format_timestamp(match.updated_at),
        "last_checked_at": format_timestamp(match.last_checked_at),
    }


def _load_detail(value: Any) -> List[Dict[str, Any]]:
    # Older rows hold a single object ({} or {"direct_application": true})
    if not value:
        return []
    if isinstance(value, dict):
        return [value]
    return [item for item in value if isinstance(item, dict)]


def _format_decimal(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(value)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    Base.metadata.create_all(engine, checkfirst=True)

    tables = inspect(engine).get_table_names()
    logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
