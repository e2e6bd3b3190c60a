"""Errors raised by the matching core for bad input and rejected transitions.

Storage failures live in ``fundmatch.persistence.exceptions``. None of the
errors here are worth retrying: they describe a request that cannot succeed
as made.
"""

from typing import List, Optional


class MatchingError(Exception):
    """Base class for matching and workflow errors."""


class ValidationError(MatchingError, ValueError):
    """Raised when input has the wrong shape.

    Examples:
    - an eligibility criterion with an unknown type or misplaced fields
    - an award transition without an award amount, or with a negative one
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        super().__init__(message if not self.errors else f"{message}: {'; '.join(self.errors)}")


class TransitionError(MatchingError):
    """Base class for errors raised while moving a match between statuses."""


class InvalidTransition(TransitionError):
    """Raised when an event is not legal from the match's current status."""

    def __init__(self, current_status: str, event: str, message: Optional[str] = None):
        self.current_status = current_status
        self.event = event
        super().__init__(message or f"Cannot {event} a match in status '{current_status}'")


class Unauthorized(TransitionError):
    """Raised when the actor's role does not allow the requested event."""

    def __init__(self, role: str, event: str, message: Optional[str] = None):
        self.role = role
        self.event = event
        super().__init__(message or f"Role '{role}' is not allowed to {event} this match")
