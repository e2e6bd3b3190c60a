"""Application status state machine for opportunity matches.

The machine is pure: ``apply`` takes a match snapshot and returns the next
one. Persisting the result, and refusing it when the stored status has moved
on, is the repository's job.

    pending ──notify──▶ notified
    pending / notified ──apply──▶ applied
    applied ──award──▶ awarded ──fund──▶ funded
    applied ──reject──▶ rejected
    pending / notified / applied / awarded ──archive──▶ archived

funded, rejected and archived are terminal.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

from fundmatch.domain.models import Actor, MatchStatus, OpportunityMatch, Role, StatusChange
from fundmatch.logging import get_logger
from fundmatch.utils.timestamps import ensure_utc, utc_now

from .exceptions import InvalidTransition, Unauthorized, ValidationError

logger = get_logger(__name__, component="workflow")


class MatchEventType(str, Enum):
    """Events that move a match between statuses."""

    NOTIFY = "notify"
    APPLY = "apply"
    AWARD = "award"
    FUND = "fund"
    REJECT = "reject"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class Transition:
    sources: FrozenSet[MatchStatus]
    target: MatchStatus
    applicant_allowed: bool = False


TRANSITIONS: Dict[MatchEventType, Transition] = {
    MatchEventType.NOTIFY: Transition(
        frozenset({MatchStatus.PENDING}), MatchStatus.NOTIFIED
    ),
    MatchEventType.APPLY: Transition(
        frozenset({MatchStatus.PENDING, MatchStatus.NOTIFIED}),
        MatchStatus.APPLIED,
        applicant_allowed=True,
    ),
    MatchEventType.AWARD: Transition(
        frozenset({MatchStatus.APPLIED}), MatchStatus.AWARDED
    ),
    MatchEventType.FUND: Transition(
        frozenset({MatchStatus.AWARDED}), MatchStatus.FUNDED
    ),
    MatchEventType.REJECT: Transition(
        frozenset({MatchStatus.APPLIED}), MatchStatus.REJECTED
    ),
    MatchEventType.ARCHIVE: Transition(
        frozenset(
            {MatchStatus.PENDING, MatchStatus.NOTIFIED, MatchStatus.APPLIED, MatchStatus.AWARDED}
        ),
        MatchStatus.ARCHIVED,
    ),
}


def parse_event(event: Union[str, MatchEventType]) -> MatchEventType:
    """Resolve an event name, raising ValidationError for unknown ones."""
    if isinstance(event, MatchEventType):
        return event
    try:
        return MatchEventType(str(event).strip().lower())
    except ValueError as e:
        raise ValidationError(
            f"Unknown event '{event}'",
            [f"expected one of: {', '.join(e.value for e in MatchEventType)}"],
        ) from e


def parse_award_amount(value: Any) -> Decimal:
    """Validate the award amount carried by an award event."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Award amount is required")
    if isinstance(value, bool):
        raise ValidationError("Award amount must be a number", [repr(value)])

    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValidationError("Award amount must be a number", [repr(value)]) from e

    if not amount.is_finite():
        raise ValidationError("Award amount must be a finite number", [repr(value)])
    if amount < 0:
        raise ValidationError("Award amount cannot be negative", [str(amount)])
    return amount


class ApplicationStateMachine:
    """Validates and applies status transitions for opportunity matches."""

    def __init__(self, transitions: Optional[Mapping[MatchEventType, Transition]] = None):
        self.transitions = dict(transitions or TRANSITIONS)

    def allowed_events(
        self, match: OpportunityMatch, actor: Optional[Actor] = None
    ) -> List[MatchEventType]:
        """Events legal from the match's status, filtered by actor when given."""
        events = []
        for event, transition in self.transitions.items():
            if match.status not in transition.sources:
                continue
            if actor is not None and not self._is_permitted(transition, match, actor):
                continue
            events.append(event)
        return events

    def apply(
        self,
        match: OpportunityMatch,
        event: Union[str, MatchEventType],
        actor: Actor,
        payload: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> OpportunityMatch:
        """Apply an event to a match and return the updated match.

        Checks run in a fixed order: the event must be legal from the
        current status, then the actor must hold a permitted role, then the
        payload must be valid.

        Args:
            match: Current match snapshot
            event: Event name or MatchEventType
            actor: User requesting the change
            payload: Event data; award takes ``award_amount`` and optional ``notes``
            now: Transition time (defaults to the current UTC time)

        Returns:
            New OpportunityMatch; the input is left unchanged

        Raises:
            InvalidTransition: If the event is not legal from the current status
            Unauthorized: If the actor's role does not allow the event
            ValidationError: If the event name or payload is invalid
        """
        event = parse_event(event)
        transition = self.transitions[event]
        payload = payload or {}

        if match.status not in transition.sources:
            raise InvalidTransition(match.status.value, event.value)

        if not self._is_permitted(transition, match, actor):
            raise Unauthorized(actor.role.value, event.value)

        occurred_at = ensure_utc(now) if now else utc_now()
        update: Dict[str, Any] = {
            "status": transition.target,
            "updated_at": occurred_at,
        }

        if event is MatchEventType.APPLY:
            update["applied_at"] = occurred_at
            update["applied_by_id"] = actor.user_id
        elif event is MatchEventType.AWARD:
            update["award_amount"] = parse_award_amount(payload.get("award_amount"))
            update["awarded_at"] = occurred_at
            update["awarded_by_id"] = actor.user_id
            notes = payload.get("notes")
            if notes is not None:
                update["notes"] = str(notes)
        elif event is MatchEventType.FUND:
            update["funded_at"] = occurred_at
            update["funded_by_id"] = actor.user_id
        elif event is MatchEventType.ARCHIVE:
            update["archived_from"] = match.status

        update["status_history"] = [
            *match.status_history,
            StatusChange(
                from_status=match.status,
                to_status=transition.target,
                event=event.value,
                actor_id=actor.user_id,
                occurred_at=occurred_at,
            ),
        ]

        logger.debug(
            f"Match ({match.opportunity_id}, {match.survivor_id}) "
            f"{match.status.value} -> {transition.target.value}",
            extra={
                "event": "match.transition.validated",
                "opportunity_id": match.opportunity_id,
                "survivor_id": match.survivor_id,
                "transition": event.value,
                "actor_id": actor.user_id,
            },
        )

        return match.model_copy(update=update)

    @staticmethod
    def _is_permitted(transition: Transition, match: OpportunityMatch, actor: Actor) -> bool:
        if actor.is_admin:
            return True
        return (
            transition.applicant_allowed
            and actor.role is Role.USER
            and actor.user_id == match.survivor_id
        )
