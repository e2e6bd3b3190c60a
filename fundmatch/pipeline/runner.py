"""Matching sweep: scores every active opportunity against every applicant."""

import threading
import time
from typing import List, Sequence
from uuid import uuid4

from fundmatch.domain.models import ApplicantProfile, FundingOpportunity, MatchStatus
from fundmatch.logging import get_logger
from fundmatch.logging.context import log_context
from fundmatch.persistence.exceptions import PersistenceError
from fundmatch.persistence.repositories import ApplicantRepository, OpportunityRepository
from fundmatch.services.matches import MatchService
from fundmatch.utils.timestamps import utc_now

from .models import OpportunitySweepStats, SweepResult

logger = get_logger(__name__, component="pipeline")


class MatchingSweep:
    """
    Runs the matching engine across all active opportunities.

    For each opportunity with at least one criterion and each applicant
    profile, an existing match is rescored (archived ones are left alone)
    and a missing one is created when the score reaches the service's
    minimum. Each pair is stored in its own session, so a failure only
    costs that pair.
    """

    def __init__(self, match_service: MatchService, opportunity_statuses: Sequence[str] = ("active",)):
        """
        Initialize the sweep.

        Args:
            match_service: Service used to score and store matches
            opportunity_statuses: Opportunity statuses included in the sweep
        """
        self.match_service = match_service
        self.opportunity_statuses = tuple(opportunity_statuses)
        self._lock = threading.Lock()

    def run_once(self) -> SweepResult:
        """
        Execute one sweep.

        Returns:
            SweepResult with per-opportunity stats. A call made while another
            sweep is running returns immediately with ``skipped=True``.
        """
        run_started_at = utc_now()
        run_id = uuid4().hex

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                logger.warning(
                    "Matching sweep skipped: previous sweep still in progress",
                    extra={"event": "sweep.run.skipped", "reason": "lock_held"},
                )
            return SweepResult(
                run_started_at=run_started_at,
                run_finished_at=utc_now(),
                run_id=run_id,
                skipped=True,
            )

        try:
            with log_context(run_id=run_id):
                return self._run(run_id, run_started_at)
        finally:
            self._lock.release()

    def _run(self, run_id: str, run_started_at) -> SweepResult:
        try:
            opportunities, profiles = self._load_inputs()
        except PersistenceError as e:
            logger.error(
                f"Matching sweep could not load its inputs: {e}",
                exc_info=True,
                extra={"event": "sweep.run.failed"},
            )
            return SweepResult(
                run_started_at=run_started_at,
                run_finished_at=utc_now(),
                run_id=run_id,
                error_message=str(e),
            )

        logger.info(
            "Matching sweep started",
            extra={
                "event": "sweep.run.started",
                "opportunity_count": len(opportunities),
                "profile_count": len(profiles),
            },
        )

        stats: List[OpportunitySweepStats] = []
        without_criteria = 0

        for opportunity in opportunities:
            if not opportunity.criteria:
                without_criteria += 1
                logger.debug(
                    f"Skipping opportunity without criteria: {opportunity.name}",
                    extra={"opportunity_id": opportunity.id},
                )
                continue
            stats.append(self._sweep_opportunity(opportunity, profiles))

        result = SweepResult(
            run_started_at=run_started_at,
            run_finished_at=utc_now(),
            run_id=run_id,
            opportunity_stats=stats,
            opportunities_without_criteria=without_criteria,
        )

        logger.info(
            "Matching sweep completed",
            extra={
                "event": "sweep.run.completed",
                "duration_ms": int(result.total_duration_seconds * 1000),
                "total_evaluated": result.total_evaluated,
                "total_created": result.total_created,
                "total_rescored": result.total_rescored,
                "total_skipped": result.total_skipped,
                "total_errors": result.total_errors,
                "had_errors": result.had_errors,
            },
        )
        return result

    def _load_inputs(self):
        with self.match_service.session_factory() as session:
            opportunities = OpportunityRepository(session).list_active(self.opportunity_statuses)
            profiles = ApplicantRepository(session).list_all()
        return opportunities, profiles

    def _sweep_opportunity(
        self, opportunity: FundingOpportunity, profiles: Sequence[ApplicantProfile]
    ) -> OpportunitySweepStats:
        started = time.time()
        stats = OpportunitySweepStats(opportunity_id=opportunity.id, opportunity_name=opportunity.name)
        service = self.match_service

        with log_context(opportunity_id=opportunity.id):
            for profile in profiles:
                try:
                    existing = service.get_match(opportunity.id, profile.survivor_id)

                    if existing is None:
                        score = service.scorer.score(opportunity.criteria, profile)
                        stats.evaluated_count += 1
                        if score.is_match(service.min_score):
                            service.evaluate_match(opportunity, profile, score)
                            stats.created_count += 1
                        else:
                            stats.skipped_count += 1
                    elif existing.status is MatchStatus.ARCHIVED:
                        stats.skipped_count += 1
                    else:
                        service.rescore_match(opportunity, profile, existing)
                        stats.evaluated_count += 1
                        stats.rescored_count += 1

                except Exception as e:
                    # One pair failing must not stop the sweep
                    stats.error_count += 1
                    logger.error(
                        f"Error matching survivor {profile.survivor_id} to {opportunity.name}: {e}",
                        extra={
                            "event": "sweep.pair.failed",
                            "survivor_id": profile.survivor_id,
                            "error_type": type(e).__name__,
                        },
                        exc_info=True,
                    )

            stats.duration_seconds = time.time() - started
            logger.info(
                f"Swept opportunity: {opportunity.name}",
                extra={
                    "event": "sweep.opportunity.completed",
                    "evaluated": stats.evaluated_count,
                    "created": stats.created_count,
                    "rescored": stats.rescored_count,
                    "skipped": stats.skipped_count,
                    "errors": stats.error_count,
                },
            )

        return stats
