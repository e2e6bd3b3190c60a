"""Errors raised by the application state machine."""

from fundmatch.domain.exceptions import (
    InvalidTransition,
    TransitionError,
    Unauthorized,
    ValidationError,
)

__all__ = ["InvalidTransition", "TransitionError", "Unauthorized", "ValidationError"]
