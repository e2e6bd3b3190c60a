"""Eligibility evaluation for funding opportunities.

This module provides:
- evaluate: checks one criterion against one applicant profile
- MatchScorer: scores an applicant against a full criteria list
- MatchResult / ScoreResult: the per-criterion and aggregate outcomes
"""

from .evaluator import MANUAL_REVIEW, evaluate, normalize_postal_code
from .models import MatchResult, ScoreResult
from .scorer import MatchScorer, percentage

__all__ = [
    "MANUAL_REVIEW",
    "MatchResult",
    "MatchScorer",
    "ScoreResult",
    "evaluate",
    "normalize_postal_code",
    "percentage",
]
