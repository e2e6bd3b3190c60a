"""Unit tests for persistence layer."""

import threading
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from fundmatch.domain.models import (
    ApplicantProfile,
    FundingOpportunity,
    IncomeCriterion,
    MalformedCriterion,
    MatchStatus,
    OpportunityMatch,
    StatusChange,
)
from fundmatch.persistence import (
    ApplicantRepository,
    ConcurrentModification,
    DatabaseConnectionError,
    MatchRepository,
    OpportunityRepository,
    RecordNotFoundError,
    StorageUnavailable,
    close_database,
    get_engine,
    get_session,
    init_database,
)
from fundmatch.persistence.database import _redact_url
from fundmatch.persistence.schema import (
    NOTES_COLUMNS,
    SCORE_COLUMNS,
    FundingOpportunityModel,
    OpportunityMatchModel,
)

CREATED = datetime(2026, 2, 1, 9, 30, 15, 123456, tzinfo=timezone.utc)


def create_test_match(**overrides) -> OpportunityMatch:
    fields = {
        "opportunity_id": 12,
        "survivor_id": 340,
        "match_score": 50,
        "match_criteria": [
            {"index": 0, "type": "income", "matches": False, "detail": "income outside all ranges"},
            {"index": 1, "type": "householdSize", "matches": True,
             "matched_range": {"min": 2.0, "max": 6.0}},
        ],
        "created_at": CREATED,
        "updated_at": CREATED,
        "last_checked_at": CREATED,
    }
    fields.update(overrides)
    return OpportunityMatch(**fields)


@pytest.fixture
def db():
    init_database("sqlite:///:memory:")
    yield
    close_database()


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_creates_file(self, tmp_path):
        db_file = tmp_path / "subdir" / "fundmatch.db"

        init_database(f"sqlite:///{db_file}")
        try:
            assert db_file.exists()
            with get_session() as session:
                tables = {
                    row[0]
                    for row in session.execute(
                        text("SELECT name FROM sqlite_master WHERE type='table'")
                    )
                }
            assert {"funding_opportunities", "applicant_profiles", "opportunity_matches"} <= tables
        finally:
            close_database()

    def test_schema_creation_is_idempotent(self, tmp_path):
        db_url = f"sqlite:///{tmp_path / 'fundmatch.db'}"

        init_database(db_url)
        close_database()
        init_database(db_url)

        with get_session() as session:
            assert MatchRepository(session).list_all() == []
        close_database()

    def test_in_memory_engine_shares_one_connection(self, db):
        assert isinstance(get_engine().pool, StaticPool)

    def test_file_engine_pools_connections(self, tmp_path):
        init_database(f"sqlite:///{tmp_path / 'fundmatch.db'}")
        try:
            assert not isinstance(get_engine().pool, StaticPool)
        finally:
            close_database()

    def test_get_engine_without_init_raises(self):
        close_database()

        with pytest.raises(DatabaseConnectionError):
            get_engine()

    @pytest.mark.parametrize("url", ["", None])
    def test_invalid_url_raises(self, url):
        with pytest.raises(DatabaseConnectionError):
            init_database(url)

    def test_get_session_without_init_raises(self):
        close_database()

        with pytest.raises(DatabaseConnectionError, match="Database not initialized"):
            with get_session():
                pass

    def test_redact_url_hides_password(self):
        assert _redact_url("postgresql://app:secret@db:5432/fundmatch") == "postgresql://app:***@db:5432/fundmatch"
        assert _redact_url("sqlite:///./data/fundmatch.db") == "sqlite:///./data/fundmatch.db"


class TestSessionManagement:
    """Tests for commit and rollback behavior."""

    def test_session_commits_on_success(self, db):
        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(), None)

        with get_session() as session:
            assert MatchRepository(session).get(12, 340) is not None

    def test_session_rolls_back_on_exception(self, db):
        with pytest.raises(ValueError):
            with get_session() as session:
                MatchRepository(session).upsert(create_test_match(), None)
                raise ValueError("abort")

        with get_session() as session:
            assert MatchRepository(session).get(12, 340) is None

    def test_in_memory_sessions_run_one_at_a_time(self, db):
        entered = threading.Event()

        def open_session():
            with get_session():
                entered.set()

        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(), None)
            worker = threading.Thread(target=open_session)
            worker.start()
            assert not entered.wait(0.2)

        worker.join(timeout=5)
        assert entered.is_set()

    def test_rollback_in_one_thread_keeps_other_threads_writes(self, db):
        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(), None)

        errors = []

        def fail_after_read():
            try:
                with get_session() as session:
                    MatchRepository(session).get(12, 340)
                    raise ValueError("abort")
            except ValueError as e:
                errors.append(e)

        with get_session() as session:
            MatchRepository(session).upsert(
                create_test_match(status=MatchStatus.NOTIFIED), MatchStatus.PENDING
            )
            worker = threading.Thread(target=fail_after_read)
            worker.start()

        worker.join(timeout=5)
        assert len(errors) == 1
        with get_session() as session:
            assert MatchRepository(session).get(12, 340).status is MatchStatus.NOTIFIED


class TestMatchRepository:
    """Tests for MatchRepository."""

    def test_insert_and_read_back_identical(self, db):
        match = create_test_match(
            notes="called applicant",
            status_history=[
                StatusChange(
                    from_status=MatchStatus.PENDING,
                    to_status=MatchStatus.NOTIFIED,
                    event="notify",
                    actor_id=1,
                    occurred_at=CREATED,
                )
            ],
            status=MatchStatus.NOTIFIED,
        )

        with get_session() as session:
            MatchRepository(session).upsert(match, None)

        with get_session() as session:
            stored = MatchRepository(session).get(12, 340)

        assert stored == match

    def test_award_amount_keeps_precision(self, db):
        match = create_test_match(
            status=MatchStatus.AWARDED, award_amount=Decimal("2500.10"), awarded_at=CREATED, awarded_by_id=1
        )

        with get_session() as session:
            MatchRepository(session).upsert(match, None)
        with get_session() as session:
            stored = MatchRepository(session).get(12, 340)

        assert stored.award_amount == Decimal("2500.10")
        assert stored.awarded_at == CREATED

    def test_get_missing_returns_none(self, db):
        with get_session() as session:
            assert MatchRepository(session).get(1, 1) is None

    def test_insert_when_exists_raises_concurrent_modification(self, db):
        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(), None)

        with pytest.raises(ConcurrentModification) as exc_info:
            with get_session() as session:
                MatchRepository(session).upsert(create_test_match(match_score=90), None)

        assert exc_info.value.opportunity_id == 12
        with get_session() as session:
            assert MatchRepository(session).get(12, 340).match_score == 50

    def test_conditional_update_succeeds_when_status_unchanged(self, db):
        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(), None)

        notified = create_test_match(status=MatchStatus.NOTIFIED)
        with get_session() as session:
            stored = MatchRepository(session).upsert(notified, MatchStatus.PENDING)

        assert stored.status is MatchStatus.NOTIFIED

    def test_conditional_update_rejects_stale_status(self, db):
        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(status=MatchStatus.APPLIED), None)

        with pytest.raises(ConcurrentModification) as exc_info:
            with get_session() as session:
                MatchRepository(session).upsert(
                    create_test_match(status=MatchStatus.NOTIFIED), MatchStatus.PENDING
                )

        assert exc_info.value.expected_status == "pending"
        assert exc_info.value.actual_status == "applied"
        with get_session() as session:
            assert MatchRepository(session).get(12, 340).status is MatchStatus.APPLIED

    def test_conditional_update_of_missing_match(self, db):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                MatchRepository(session).upsert(create_test_match(), MatchStatus.PENDING)

    def test_update_ignores_stored_status(self, db):
        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(status=MatchStatus.APPLIED), None)

        stale = create_test_match(status=MatchStatus.PENDING, notes="call back Tuesday")
        with get_session() as session:
            stored = MatchRepository(session).update(stale, NOTES_COLUMNS)

        assert stored.notes == "call back Tuesday"
        assert stored.status is MatchStatus.APPLIED

    def test_update_of_missing_match(self, db):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                MatchRepository(session).update(create_test_match(notes="x"), NOTES_COLUMNS)

    def test_column_limited_update_leaves_other_columns(self, db):
        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(notes="keep me"), None)

        rescored = create_test_match(match_score=100, match_criteria=[], notes=None)
        with get_session() as session:
            stored = MatchRepository(session).upsert(rescored, MatchStatus.PENDING, SCORE_COLUMNS)

        assert stored.match_score == 100
        assert stored.match_criteria == []
        assert stored.notes == "keep me"

    def test_legacy_approved_status_reads_as_awarded(self, db):
        with get_session() as session:
            MatchRepository(session).upsert(create_test_match(), None)
            session.execute(
                text("UPDATE opportunity_matches SET status = 'approved' WHERE survivor_id = 340")
            )

        with get_session() as session:
            stored = MatchRepository(session).get(12, 340)
        assert stored.status is MatchStatus.AWARDED

        funded = stored.model_copy(update={"status": MatchStatus.FUNDED})
        with get_session() as session:
            assert MatchRepository(session).upsert(funded, MatchStatus.AWARDED).status is MatchStatus.FUNDED

    def test_legacy_object_detail_reads_as_list(self, db):
        with get_session() as session:
            session.add(
                OpportunityMatchModel(
                    opportunity_id=5,
                    survivor_id=9,
                    match_score=100,
                    match_criteria={"direct_application": True},
                    status="applied",
                    status_history=[],
                    created_at="2025-06-01T00:00:00.000000Z",
                    updated_at="2025-06-01T00:00:00.000000Z",
                    last_checked_at="2025-06-01T00:00:00Z",
                )
            )

        with get_session() as session:
            stored = MatchRepository(session).get(5, 9)

        assert stored.match_criteria == [{"direct_application": True}]
        assert stored.last_checked_at == datetime(2025, 6, 1, tzinfo=timezone.utc)

    def test_lists_are_ordered_by_score(self, db):
        with get_session() as session:
            repo = MatchRepository(session)
            repo.upsert(create_test_match(survivor_id=1, match_score=40), None)
            repo.upsert(create_test_match(survivor_id=2, match_score=90), None)
            repo.upsert(create_test_match(opportunity_id=13, survivor_id=1, match_score=70), None)

        with get_session() as session:
            repo = MatchRepository(session)
            by_opportunity = repo.list_by_opportunity(12)
            by_survivor = repo.list_by_survivor(1)
            everything = repo.list_all()

        assert [m.match_score for m in by_opportunity] == [90, 40]
        assert [m.match_score for m in by_survivor] == [70, 40]
        assert [m.match_score for m in everything] == [90, 70, 40]

    def test_database_errors_become_storage_unavailable(self):
        session = Mock()
        session.get.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))

        with pytest.raises(StorageUnavailable):
            MatchRepository(session).get(12, 340)

    def test_failed_list_becomes_storage_unavailable(self):
        session = Mock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))

        with pytest.raises(StorageUnavailable):
            MatchRepository(session).list_all()


class TestOpportunityRepository:
    """Tests for OpportunityRepository."""

    def test_upsert_and_get(self, db):
        opportunity = FundingOpportunity(
            id=12,
            name="Home Repair Grant",
            award_amount=Decimal("5000"),
            criteria=[{"type": "income", "ranges": [{"min": 0, "max": 50000}]}],
        )

        with get_session() as session:
            OpportunityRepository(session).upsert(opportunity)
        with get_session() as session:
            stored = OpportunityRepository(session).get(12)

        assert stored == opportunity
        assert isinstance(stored.criteria[0], IncomeCriterion)

    def test_upsert_overwrites(self, db):
        with get_session() as session:
            OpportunityRepository(session).upsert(FundingOpportunity(id=1, name="Old name"))
        with get_session() as session:
            OpportunityRepository(session).upsert(FundingOpportunity(id=1, name="New name", status="closed"))
        with get_session() as session:
            stored = OpportunityRepository(session).get(1)

        assert stored.name == "New name"
        assert stored.status == "closed"

    def test_bad_stored_criteria_are_read_leniently(self, db):
        with get_session() as session:
            session.add(
                FundingOpportunityModel(
                    id=3,
                    name="Legacy Program",
                    description="",
                    status="active",
                    eligibility_criteria=[
                        {"type": "zipCode", "ranges": [{"min": "10000", "max": "19999"}]},
                        {"type": "age", "min": 65},
                    ],
                )
            )

        with get_session() as session:
            stored = OpportunityRepository(session).get(3)

        assert len(stored.criteria) == 2
        assert isinstance(stored.criteria[1], MalformedCriterion)

    def test_malformed_criteria_are_written_back_unchanged(self, db):
        raw = {"type": "age", "min": 65}
        with get_session() as session:
            session.add(
                FundingOpportunityModel(id=4, name="Legacy", description="", status="active",
                                        eligibility_criteria=[raw])
            )
        with get_session() as session:
            repo = OpportunityRepository(session)
            repo.upsert(repo.get(4).model_copy(update={"name": "Renamed"}))
        with get_session() as session:
            assert session.get(FundingOpportunityModel, 4).eligibility_criteria == [raw]

    def test_list_active_filters_by_status(self, db):
        with get_session() as session:
            repo = OpportunityRepository(session)
            repo.upsert(FundingOpportunity(id=2, name="Open B"))
            repo.upsert(FundingOpportunity(id=1, name="Open A"))
            repo.upsert(FundingOpportunity(id=3, name="Closed", status="closed"))

        with get_session() as session:
            active = OpportunityRepository(session).list_active()
            both = OpportunityRepository(session).list_active(["active", "closed"])

        assert [o.id for o in active] == [1, 2]
        assert [o.id for o in both] == [1, 2, 3]


class TestApplicantRepository:
    """Tests for ApplicantRepository."""

    def test_round_trip(self, db):
        profile = ApplicantProfile(
            survivor_id=340,
            zip_code="28801",
            annual_income=40000,
            household_size=4,
            disaster_events=["Hurricane Helene", "Flood 2024"],
            custom_attributes={"homeowner": "yes"},
        )

        with get_session() as session:
            ApplicantRepository(session).upsert(profile)
        with get_session() as session:
            stored = ApplicantRepository(session).get(340)

        assert stored == profile

    def test_unknown_income_round_trips_as_none(self, db):
        with get_session() as session:
            ApplicantRepository(session).upsert(ApplicantProfile(survivor_id=1))
        with get_session() as session:
            assert ApplicantRepository(session).get(1).annual_income is None

    def test_list_all_ordered_by_id(self, db):
        with get_session() as session:
            repo = ApplicantRepository(session)
            repo.upsert(ApplicantProfile(survivor_id=5))
            repo.upsert(ApplicantProfile(survivor_id=2))

        with get_session() as session:
            assert [p.survivor_id for p in ApplicantRepository(session).list_all()] == [2, 5]
