"""Data models for matching sweep tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class OpportunitySweepStats:
    """
    Statistics for one opportunity within a sweep.

    Attributes:
        opportunity_id: Opportunity that was swept
        opportunity_name: Display name, for logs and reports
        evaluated_count: Applicant profiles scored against the opportunity
        created_count: New pending matches stored
        rescored_count: Existing matches whose score was refreshed
        skipped_count: Profiles below the minimum score, or with an archived match
        error_count: Pairs that failed and were left for the next sweep
        duration_seconds: Time spent on this opportunity
    """

    opportunity_id: int
    opportunity_name: str = ""
    evaluated_count: int = 0
    created_count: int = 0
    rescored_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    duration_seconds: float = 0.0

    @property
    def had_errors(self) -> bool:
        return self.error_count > 0


@dataclass
class SweepResult:
    """
    Aggregate results of one matching sweep.

    Attributes:
        run_started_at: UTC timestamp when the sweep began
        run_finished_at: UTC timestamp when the sweep completed
        run_id: Identifier attached to every log line of the sweep
        opportunity_stats: Per-opportunity statistics
        opportunities_without_criteria: Opportunities passed over for having no criteria
        skipped: Whether the sweep was skipped because another was running
        error_message: Set when the sweep could not load its inputs
    """

    run_started_at: datetime
    run_finished_at: datetime
    run_id: str = ""
    opportunity_stats: List[OpportunitySweepStats] = field(default_factory=list)
    opportunities_without_criteria: int = 0
    skipped: bool = False
    error_message: Optional[str] = None
    total_duration_seconds: float = 0.0

    def __post_init__(self):
        if self.total_duration_seconds == 0.0:
            delta = self.run_finished_at - self.run_started_at
            self.total_duration_seconds = delta.total_seconds()

    @property
    def total_evaluated(self) -> int:
        return sum(s.evaluated_count for s in self.opportunity_stats)

    @property
    def total_created(self) -> int:
        return sum(s.created_count for s in self.opportunity_stats)

    @property
    def total_rescored(self) -> int:
        return sum(s.rescored_count for s in self.opportunity_stats)

    @property
    def total_skipped(self) -> int:
        return sum(s.skipped_count for s in self.opportunity_stats)

    @property
    def total_errors(self) -> int:
        errors = sum(s.error_count for s in self.opportunity_stats)
        return errors + (1 if self.error_message else 0)

    @property
    def had_errors(self) -> bool:
        return self.total_errors > 0
