"""Match service: the entry point for creating, rescoring and moving matches.

Each operation runs in its own database session. Reads and decisions are
made on the caller's snapshot; rescores and transitions are conditioned on
the status in that snapshot, so a stale decision surfaces as
ConcurrentModification rather than overwriting somebody else's change.
Note edits only touch the notes columns and are not status-conditioned.
"""

from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from fundmatch.domain.exceptions import Unauthorized, ValidationError
from fundmatch.domain.models import (
    Actor,
    ApplicantProfile,
    FundingOpportunity,
    MatchEvent,
    MatchStatus,
    OpportunityMatch,
    Role,
    StatusChange,
)
from fundmatch.eligibility.models import ScoreResult
from fundmatch.eligibility.scorer import MatchScorer
from fundmatch.logging import get_logger
from fundmatch.persistence.database import get_session
from fundmatch.persistence.exceptions import StorageUnavailable
from fundmatch.persistence.repositories import MatchRepository
from fundmatch.persistence.schema import NOTES_COLUMNS, SCORE_COLUMNS, WORKFLOW_COLUMNS
from fundmatch.utils.timestamps import utc_now
from fundmatch.workflow.state_machine import ApplicationStateMachine, MatchEventType, parse_event

logger = get_logger(__name__, component="matching")

MatchListener = Callable[[MatchEvent], None]

DIRECT_APPLICATION_DETAIL = {"direct_application": True}


class MatchService:
    """Creates, rescores and transitions opportunity matches."""

    def __init__(
        self,
        min_score: int = 1,
        listeners: Iterable[MatchListener] = (),
        scorer: Optional[MatchScorer] = None,
        state_machine: Optional[ApplicationStateMachine] = None,
        session_factory=get_session,
    ):
        """
        Initialize the match service.

        Args:
            min_score: Lowest score that counts as a match for the sweep
            listeners: Called with a MatchEvent after each committed transition
            scorer: Scorer to use (defaults to a new MatchScorer)
            state_machine: State machine to use (defaults to the standard table)
            session_factory: Context manager factory yielding a session
        """
        self.min_score = min_score
        self.listeners: List[MatchListener] = list(listeners)
        self.scorer = scorer or MatchScorer()
        self.state_machine = state_machine or ApplicationStateMachine()
        self.session_factory = session_factory

    def add_listener(self, listener: MatchListener) -> None:
        self.listeners.append(listener)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def evaluate_match(
        self,
        opportunity: FundingOpportunity,
        profile: ApplicantProfile,
        score_result: Optional[ScoreResult] = None,
    ) -> OpportunityMatch:
        """Score a pair for the first time and store the match as pending.

        Args:
            opportunity: Opportunity whose criteria are applied
            profile: Applicant being scored
            score_result: Score already computed for this pair, if any

        Raises:
            ConcurrentModification: If a match for the pair already exists
            StorageUnavailable: If the store cannot be written
        """
        result = score_result
        if result is None:
            result = self.scorer.score(opportunity.criteria, profile)
        now = utc_now()

        match = OpportunityMatch(
            opportunity_id=opportunity.id,
            survivor_id=profile.survivor_id,
            match_score=result.score,
            match_criteria=result.details,
            status=MatchStatus.PENDING,
            created_at=now,
            updated_at=now,
            last_checked_at=now,
        )
        stored = self._save(match, None)

        logger.info(
            f"Match created for opportunity {opportunity.id}, survivor {profile.survivor_id}",
            extra={
                "event": "match.created",
                "opportunity_id": opportunity.id,
                "survivor_id": profile.survivor_id,
                "score": result.score,
            },
        )
        return stored

    def rescore_match(
        self,
        opportunity: FundingOpportunity,
        profile: ApplicantProfile,
        existing: OpportunityMatch,
    ) -> OpportunityMatch:
        """Recompute score and detail for an existing match.

        Status, notes, award data and history are left alone.

        Raises:
            ValidationError: If ``existing`` belongs to a different pair
            ConcurrentModification: If the match changed status since it was read
            StorageUnavailable: If the store cannot be written
        """
        if existing.key != (opportunity.id, profile.survivor_id):
            raise ValidationError(
                "Match does not belong to this opportunity and applicant",
                [f"match key {existing.key}, expected {(opportunity.id, profile.survivor_id)}"],
            )

        result = self.scorer.score(opportunity.criteria, profile)
        now = utc_now()

        rescored = existing.model_copy(
            update={
                "match_score": result.score,
                "match_criteria": result.details,
                "last_checked_at": now,
                "updated_at": now,
            }
        )
        stored = self._save(rescored, existing.status, SCORE_COLUMNS)

        logger.debug(
            f"Match rescored for opportunity {opportunity.id}, survivor {profile.survivor_id}",
            extra={
                "event": "match.rescored",
                "opportunity_id": opportunity.id,
                "survivor_id": profile.survivor_id,
                "previous_score": existing.match_score,
                "score": result.score,
            },
        )
        return stored

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def transition(
        self,
        match: OpportunityMatch,
        event: Union[str, MatchEventType],
        actor: Actor,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> OpportunityMatch:
        """Apply a workflow event to the caller's snapshot and store it.

        Raises:
            InvalidTransition: If the event is not legal from the snapshot's status
            Unauthorized: If the actor's role does not allow the event
            ValidationError: If the payload is invalid
            ConcurrentModification: If the stored status differs from the snapshot's
            StorageUnavailable: If the store cannot be written
        """
        event = parse_event(event)
        updated = self.state_machine.apply(match, event, actor, payload)
        stored = self._save(updated, match.status, WORKFLOW_COLUMNS)

        logger.info(
            f"Match ({match.opportunity_id}, {match.survivor_id}) moved "
            f"{match.status.value} -> {stored.status.value}",
            extra={
                "event": "match.transition.applied",
                "opportunity_id": match.opportunity_id,
                "survivor_id": match.survivor_id,
                "transition": event.value,
                "from_status": match.status,
                "to_status": stored.status,
                "actor_id": actor.user_id,
            },
        )

        self._emit(
            MatchEvent(kind=stored.status.value, event=event.value, match=stored, actor_id=actor.user_id)
        )
        return stored

    def update_notes(self, match: OpportunityMatch, notes: Optional[str], actor: Actor) -> OpportunityMatch:
        """Replace a match's notes without changing its status.

        Notes may be edited at any time, so the write only touches the notes
        columns and does not depend on the snapshot's status. The returned
        match reflects the stored row, including any newer status.

        Raises:
            Unauthorized: Unless the actor is an admin or a case manager
            RecordNotFoundError: If the match no longer exists
        """
        if not (actor.is_admin or actor.role is Role.CASE_MANAGER):
            raise Unauthorized(actor.role.value, "edit notes on")

        updated = match.model_copy(update={"notes": notes, "updated_at": utc_now()})
        return self._write(updated, lambda repo: repo.update(updated, NOTES_COLUMNS))

    def apply_directly(
        self, opportunity: FundingOpportunity, survivor_id: int, actor: Actor
    ) -> OpportunityMatch:
        """Record an application, creating the match when none exists.

        A match created this way starts at applied with a score of 100,
        since the applicant was never scored against the criteria.
        """
        existing = self.get_match(opportunity.id, survivor_id)
        if existing is not None:
            return self.transition(existing, MatchEventType.APPLY, actor)

        if not (actor.is_admin or (actor.role is Role.USER and actor.user_id == survivor_id)):
            raise Unauthorized(actor.role.value, MatchEventType.APPLY.value)

        now = utc_now()
        match = OpportunityMatch(
            opportunity_id=opportunity.id,
            survivor_id=survivor_id,
            match_score=100,
            match_criteria=[dict(DIRECT_APPLICATION_DETAIL)],
            status=MatchStatus.APPLIED,
            applied_at=now,
            applied_by_id=actor.user_id,
            status_history=[
                StatusChange(
                    from_status=MatchStatus.PENDING,
                    to_status=MatchStatus.APPLIED,
                    event=MatchEventType.APPLY.value,
                    actor_id=actor.user_id,
                    occurred_at=now,
                )
            ],
            created_at=now,
            updated_at=now,
            last_checked_at=now,
        )
        stored = self._save(match, None)

        logger.info(
            f"Direct application recorded for opportunity {opportunity.id}, survivor {survivor_id}",
            extra={
                "event": "match.applied_directly",
                "opportunity_id": opportunity.id,
                "survivor_id": survivor_id,
                "actor_id": actor.user_id,
            },
        )
        self._emit(
            MatchEvent(
                kind=stored.status.value,
                event=MatchEventType.APPLY.value,
                match=stored,
                actor_id=actor.user_id,
            )
        )
        return stored

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_match(self, opportunity_id: int, survivor_id: int) -> Optional[OpportunityMatch]:
        with self._session() as session:
            return MatchRepository(session).get(opportunity_id, survivor_id)

    def list_by_opportunity(self, opportunity_id: int) -> List[OpportunityMatch]:
        with self._session() as session:
            return MatchRepository(session).list_by_opportunity(opportunity_id)

    def list_by_survivor(self, survivor_id: int) -> List[OpportunityMatch]:
        with self._session() as session:
            return MatchRepository(session).list_by_survivor(survivor_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _session(self):
        return self.session_factory()

    def _save(
        self,
        match: OpportunityMatch,
        expected_prior_status: Optional[MatchStatus],
        columns=None,
    ) -> OpportunityMatch:
        return self._write(
            match, lambda repo: repo.upsert(match, expected_prior_status, columns)
        )

    def _write(
        self, match: OpportunityMatch, operation: Callable[[MatchRepository], OpportunityMatch]
    ) -> OpportunityMatch:
        try:
            with self._session() as session:
                return operation(MatchRepository(session))
        except SQLAlchemyError as e:
            # Failures at commit time escape the repository's own handling
            logger.error(
                f"Failed to commit match ({match.opportunity_id}, {match.survivor_id}): {e}",
                exc_info=True,
                extra={"event": "match.commit_failed"},
            )
            raise StorageUnavailable(f"Failed to commit match: {e}") from e

    def _emit(self, event: MatchEvent) -> None:
        for listener in self.listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"Match listener failed for {event.kind} event: {e}",
                    exc_info=True,
                    extra={
                        "event": "match.listener.failed",
                        "opportunity_id": event.match.opportunity_id,
                        "survivor_id": event.match.survivor_id,
                        "kind": event.kind,
                    },
                )
