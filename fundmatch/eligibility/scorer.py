"""Match scorer: aggregates criterion results into a 0..100 score."""

import logging
from typing import Sequence

from fundmatch.domain.models import ApplicantProfile

from .evaluator import evaluate
from .models import ScoreResult

logger = logging.getLogger(__name__)


def percentage(matched: int, evaluated: int) -> int:
    """Share of matched criteria as a whole percentage, halves rounded up.

    An opportunity with nothing to score is open to everyone and scores 100.
    """
    if evaluated == 0:
        return 100
    return (200 * matched + evaluated) // (2 * evaluated)


class MatchScorer:
    """Scores an applicant against an opportunity's full criteria list.

    Custom criteria are evaluated for display but excluded from both sides
    of the ratio. The scorer holds no state between calls and can be shared
    across threads.
    """

    def __init__(self, logger_instance: logging.Logger = None):
        self.logger = logger_instance or logger

    def score(self, criteria: Sequence, profile: ApplicantProfile) -> ScoreResult:
        """Evaluate every criterion and compute the score.

        Args:
            criteria: EligibilityCriterion variants, in display order
            profile: Applicant snapshot

        Returns:
            ScoreResult with one MatchResult per criterion
        """
        results = [evaluate(criterion, profile, index) for index, criterion in enumerate(criteria)]

        scored = [result for result in results if result.counts_toward_score]
        matched = sum(1 for result in scored if result.matches)

        result = ScoreResult(
            score=percentage(matched, len(scored)),
            per_criterion=results,
            matched_count=matched,
            evaluated_count=len(scored),
        )

        self.logger.debug(
            f"Scored survivor {profile.survivor_id}: {result.score}",
            extra={
                "survivor_id": profile.survivor_id,
                "score": result.score,
                "matched": matched,
                "evaluated": len(scored),
                "manual_review": result.manual_review_count,
            },
        )
        if result.warnings:
            self.logger.warning(
                "Eligibility criteria have problems",
                extra={"event": "eligibility.criteria.warnings", "warnings": result.warnings},
            )

        return result
