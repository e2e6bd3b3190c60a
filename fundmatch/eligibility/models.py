"""Result types produced by the criterion evaluator and the match scorer."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class MatchResult:
    """Outcome of evaluating one eligibility criterion against one applicant.

    Attributes:
        criterion_index: Position of the criterion in the opportunity's list
        criterion_type: Criterion kind ("zipCode", "income", ...)
        matches: Whether the applicant satisfies the criterion
        detail: Short explanation when the criterion did not match
            ("income unknown", "manual review required", ...)
        matched_range: The first range the applicant fell into, as {"min", "max"}
        matched_events: Criterion events the applicant shares
        warnings: Problems with the criterion itself (e.g. min > max)
        counts_toward_score: False for criteria that are shown but never scored
    """

    criterion_index: int
    criterion_type: str
    matches: bool
    detail: Optional[str] = None
    matched_range: Optional[Dict[str, Any]] = None
    matched_events: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    counts_toward_score: bool = True

    @property
    def needs_manual_review(self) -> bool:
        return not self.counts_toward_score

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage in ``OpportunityMatch.match_criteria``."""
        return {
            "index": self.criterion_index,
            "type": self.criterion_type,
            "matches": self.matches,
            "detail": self.detail,
            "matched_range": dict(self.matched_range) if self.matched_range else None,
            "matched_events": list(self.matched_events),
            "warnings": list(self.warnings),
            "scored": self.counts_toward_score,
        }


@dataclass
class ScoreResult:
    """Aggregate of all criterion results for one opportunity and applicant.

    Attributes:
        score: Percentage of scored criteria that matched (0..100)
        per_criterion: One MatchResult per criterion, in criteria order
        matched_count: Scored criteria that matched
        evaluated_count: Criteria that count toward the score
    """

    score: int
    per_criterion: List[MatchResult] = field(default_factory=list)
    matched_count: int = 0
    evaluated_count: int = 0

    def is_match(self, min_score: int = 1) -> bool:
        return self.score >= min_score

    @property
    def details(self) -> List[Dict[str, Any]]:
        return [result.to_dict() for result in self.per_criterion]

    @property
    def warnings(self) -> List[str]:
        return [
            f"criterion {result.criterion_index} ({result.criterion_type}): {warning}"
            for result in self.per_criterion
            for warning in result.warnings
        ]

    @property
    def manual_review_count(self) -> int:
        return sum(1 for result in self.per_criterion if result.needs_manual_review)
