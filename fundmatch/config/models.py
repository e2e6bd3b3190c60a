"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class MatchingConfig(BaseModel):
    """Settings for the periodic matching sweep."""

    interval: str = Field("30m", description="How often the sweep runs")
    min_score: int = Field(
        1, ge=0, le=100, description="Lowest score that creates a new match during a sweep"
    )
    opportunity_statuses: List[str] = Field(
        default_factory=lambda: ["active"],
        description="Opportunity statuses included in a sweep",
    )

    # Computed from interval
    interval_seconds: Optional[int] = None

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        """Reject intervals that do not parse or fall outside 5 minutes .. 24 hours."""
        try:
            validate_duration_range(parse_duration(v))
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("opportunity_statuses")
    @classmethod
    def normalize_statuses(cls, v: List[str]) -> List[str]:
        """Lowercase, strip and de-duplicate statuses, keeping order."""
        seen: List[str] = []
        for status in v:
            cleaned = status.strip().lower()
            if cleaned and cleaned not in seen:
                seen.append(cleaned)
        if not seen:
            raise ValueError("opportunity_statuses must name at least one status")
        return seen

    @model_validator(mode="after")
    def compute_interval_seconds(self):
        self.interval_seconds = parse_duration(self.interval)
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the matching service."""

    matching: MatchingConfig = Field(
        default_factory=MatchingConfig, description="Matching sweep settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
