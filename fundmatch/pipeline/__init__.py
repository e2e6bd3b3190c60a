"""Matching sweep orchestration and run reporting."""

from .models import OpportunitySweepStats, SweepResult
from .runner import MatchingSweep

__all__ = [
    "MatchingSweep",
    "OpportunitySweepStats",
    "SweepResult",
]
