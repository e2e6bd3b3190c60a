"""Application workflow for opportunity matches."""

from .exceptions import InvalidTransition, TransitionError, Unauthorized, ValidationError
from .state_machine import (
    TRANSITIONS,
    ApplicationStateMachine,
    MatchEventType,
    Transition,
    parse_award_amount,
    parse_event,
)

__all__ = [
    "ApplicationStateMachine",
    "InvalidTransition",
    "MatchEventType",
    "TRANSITIONS",
    "Transition",
    "TransitionError",
    "Unauthorized",
    "ValidationError",
    "parse_award_amount",
    "parse_event",
]
