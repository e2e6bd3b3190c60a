"""Data access layer (repositories) for persistence operations.

Repositories wrap one SQLAlchemy session, return domain models rather
than ORM models, and translate driver errors into persistence errors.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fundmatch.domain.models import (
    ApplicantProfile,
    FundingOpportunity,
    MatchStatus,
    OpportunityMatch,
)

from .exceptions import (
    ConcurrentModification,
    DataIntegrityError,
    RecordNotFoundError,
    StorageUnavailable,
)
from .schema import (
    ApplicantProfileModel,
    FundingOpportunityModel,
    OpportunityMatchModel,
    match_columns,
    opportunity_columns,
    profile_columns,
)

logger = logging.getLogger(__name__)


class MatchRepository:
    """Repository for opportunity matches with optimistic concurrency.

    Every write names the status the caller last saw. The write only lands
    if the stored status still equals it, so two actors working from the
    same snapshot cannot both move a match.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, opportunity_id: int, survivor_id: int) -> Optional[OpportunityMatch]:
        """Retrieve a match by its (opportunity, survivor) key.

        Returns:
            OpportunityMatch if found, None otherwise

        Raises:
            StorageUnavailable: If database error occurs
        """
        try:
            model = self.session.get(OpportunityMatchModel, (opportunity_id, survivor_id))
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(
                f"Error retrieving match ({opportunity_id}, {survivor_id}): {e}", exc_info=True
            )
            raise StorageUnavailable(f"Failed to retrieve match: {e}") from e

    def upsert(
        self,
        match: OpportunityMatch,
        expected_prior_status: Optional[MatchStatus],
        columns: Optional[Iterable[str]] = None,
    ) -> OpportunityMatch:
        """Insert a new match or conditionally replace an existing one.

        Args:
            match: Match to persist
            expected_prior_status: Status the caller read before deciding on
                this write. None means the caller believes no match exists.
            columns: Limit an update to these columns (e.g. SCORE_COLUMNS),
                so a rescore and a transition do not overwrite each other.
                Ignored on insert.

        Returns:
            The persisted OpportunityMatch

        Raises:
            ConcurrentModification: If the stored status differs from
                expected_prior_status, or a match exists when None was given
            RecordNotFoundError: If the match to update no longer exists
            StorageUnavailable: If database error occurs
        """
        if expected_prior_status is None:
            return self._insert(match)
        return self._conditional_update(match, MatchStatus(expected_prior_status), columns)

    def update(self, match: OpportunityMatch, columns: Iterable[str]) -> OpportunityMatch:
        """Write the given columns whatever the stored status is.

        Only for columns no status decision depends on, such as NOTES_COLUMNS.

        Raises:
            RecordNotFoundError: If the match no longer exists
            StorageUnavailable: If database error occurs
        """
        return self._conditional_update(match, None, columns)

    def _insert(self, match: OpportunityMatch) -> OpportunityMatch:
        try:
            existing = self.session.get(OpportunityMatchModel, match.key)
            if existing is not None:
                raise ConcurrentModification(
                    match.opportunity_id, match.survivor_id, actual_status=existing.status
                )

            model = OpportunityMatchModel.from_domain(match)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            logger.warning(
                f"Match ({match.opportunity_id}, {match.survivor_id}) inserted concurrently",
                extra={"event": "persistence.match.insert_conflict"},
            )
            raise ConcurrentModification(match.opportunity_id, match.survivor_id) from e
        except SQLAlchemyError as e:
            logger.error(
                f"Error inserting match ({match.opportunity_id}, {match.survivor_id}): {e}",
                exc_info=True,
            )
            raise StorageUnavailable(f"Failed to insert match: {e}") from e

    def _conditional_update(
        self,
        match: OpportunityMatch,
        expected: Optional[MatchStatus],
        columns: Optional[Iterable[str]] = None,
    ) -> OpportunityMatch:
        values = match_columns(match)
        del values["opportunity_id"], values["survivor_id"]
        if columns is not None:
            wanted = set(columns)
            values = {name: value for name, value in values.items() if name in wanted}

        try:
            conditions = [
                OpportunityMatchModel.opportunity_id == match.opportunity_id,
                OpportunityMatchModel.survivor_id == match.survivor_id,
            ]
            if expected is not None:
                # Legacy rows may still say "approved" where the domain says awarded
                accepted = [expected.value]
                if expected is MatchStatus.AWARDED:
                    accepted.append("approved")
                conditions.append(OpportunityMatchModel.status.in_(accepted))

            stmt = (
                update(OpportunityMatchModel)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)

            if result.rowcount == 0:
                current = self.session.execute(
                    select(OpportunityMatchModel.status).where(
                        OpportunityMatchModel.opportunity_id == match.opportunity_id,
                        OpportunityMatchModel.survivor_id == match.survivor_id,
                    )
                ).scalar_one_or_none()

                if current is None or expected is None:
                    raise RecordNotFoundError(
                        f"Match ({match.opportunity_id}, {match.survivor_id}) not found"
                    )

                logger.info(
                    f"Match ({match.opportunity_id}, {match.survivor_id}) changed since it was read",
                    extra={
                        "event": "persistence.match.stale_write",
                        "expected_status": expected.value,
                        "actual_status": current,
                    },
                )
                raise ConcurrentModification(
                    match.opportunity_id,
                    match.survivor_id,
                    expected_status=expected.value,
                    actual_status=current,
                )

            self.session.flush()
            self.session.expire_all()
            return self.get(match.opportunity_id, match.survivor_id)

        except IntegrityError as e:
            logger.error(
                f"Integrity error updating match ({match.opportunity_id}, {match.survivor_id}): {e}",
                exc_info=True,
            )
            raise DataIntegrityError(f"Failed to update match: {e}") from e
        except SQLAlchemyError as e:
            logger.error(
                f"Error updating match ({match.opportunity_id}, {match.survivor_id}): {e}",
                exc_info=True,
            )
            raise StorageUnavailable(f"Failed to update match: {e}") from e

    def list_by_opportunity(self, opportunity_id: int) -> List[OpportunityMatch]:
        """All matches for an opportunity, best score first."""
        return self._list(OpportunityMatchModel.opportunity_id == opportunity_id)

    def list_by_survivor(self, survivor_id: int) -> List[OpportunityMatch]:
        """All matches for a survivor, best score first."""
        return self._list(OpportunityMatchModel.survivor_id == survivor_id)

    def list_all(self) -> List[OpportunityMatch]:
        return self._list()

    def _list(self, *conditions) -> List[OpportunityMatch]:
        try:
            stmt = (
                select(OpportunityMatchModel)
                .where(*conditions)
                .order_by(
                    OpportunityMatchModel.match_score.desc(),
                    OpportunityMatchModel.opportunity_id,
                    OpportunityMatchModel.survivor_id,
                )
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing matches: {e}", exc_info=True)
            raise StorageUnavailable(f"Failed to list matches: {e}") from e


class OpportunityRepository:
    """Repository for funding opportunities."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, opportunity_id: int) -> Optional[FundingOpportunity]:
        try:
            model = self.session.get(FundingOpportunityModel, opportunity_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving opportunity {opportunity_id}: {e}", exc_info=True)
            raise StorageUnavailable(f"Failed to retrieve opportunity: {e}") from e

    def upsert(self, opportunity: FundingOpportunity) -> FundingOpportunity:
        """Insert a new opportunity or overwrite an existing one.

        Raises:
            DataIntegrityError: If a constraint is violated
            StorageUnavailable: If database error occurs
        """
        try:
            existing = self.session.get(FundingOpportunityModel, opportunity.id)
            if existing:
                for column, value in opportunity_columns(opportunity).items():
                    setattr(existing, column, value)
                model = existing
            else:
                model = FundingOpportunityModel.from_domain(opportunity)
                self.session.add(model)

            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error upserting opportunity {opportunity.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to upsert opportunity: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting opportunity {opportunity.id}: {e}", exc_info=True)
            raise StorageUnavailable(f"Failed to upsert opportunity: {e}") from e

    def list_active(self, statuses=("active",)) -> List[FundingOpportunity]:
        """Opportunities whose status is one of ``statuses``, ordered by id."""
        try:
            stmt = (
                select(FundingOpportunityModel)
                .where(FundingOpportunityModel.status.in_(list(statuses)))
                .order_by(FundingOpportunityModel.id)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing opportunities: {e}", exc_info=True)
            raise StorageUnavailable(f"Failed to list opportunities: {e}") from e


class ApplicantRepository:
    """Repository for applicant profiles."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, survivor_id: int) -> Optional[ApplicantProfile]:
        try:
            model = self.session.get(ApplicantProfileModel, survivor_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving applicant {survivor_id}: {e}", exc_info=True)
            raise StorageUnavailable(f"Failed to retrieve applicant: {e}") from e

    def upsert(self, profile: ApplicantProfile) -> ApplicantProfile:
        try:
            existing = self.session.get(ApplicantProfileModel, profile.survivor_id)
            if existing:
                for column, value in profile_columns(profile).items():
                    setattr(existing, column, value)
                model = existing
            else:
                model = ApplicantProfileModel.from_domain(profile)
                self.session.add(model)

            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error upserting applicant {profile.survivor_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to upsert applicant: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting applicant {profile.survivor_id}: {e}", exc_info=True)
            raise StorageUnavailable(f"Failed to upsert applicant: {e}") from e

    def list_all(self) -> List[ApplicantProfile]:
        try:
            stmt = select(ApplicantProfileModel).order_by(ApplicantProfileModel.survivor_id)
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing applicants: {e}", exc_info=True)
            raise StorageUnavailable(f"Failed to list applicants: {e}") from e
