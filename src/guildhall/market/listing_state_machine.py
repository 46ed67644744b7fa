"""Listing state machine — enforces valid lifecycle transitions.

Listing lifecycle:
    OPEN → IN_PROGRESS → RESOLVED
    OPEN | IN_PROGRESS → EXPIRED

State semantics:
- OPEN: visible and respondable until its duration elapses.
- IN_PROGRESS: a responder has taken the listing on.
- RESOLVED: terminal — the creator confirmed completion.
- EXPIRED: terminal — the creator withdrew the listing early.

Time-based expiry is not a transition. It is a read-only predicate
overlaid on OPEN and IN_PROGRESS (see ListingStore.is_expired).

Fail-closed: invalid transitions raise. There are no implicit transitions.
"""

from __future__ import annotations

from guildhall.errors import InvalidStateError
from guildhall.models.listing import Listing, ListingStatus


# Valid transitions: {from_status: {allowed_to_statuses}}
_TRANSITIONS: dict[ListingStatus, set[ListingStatus]] = {
    ListingStatus.OPEN: {ListingStatus.IN_PROGRESS, ListingStatus.EXPIRED},
    ListingStatus.IN_PROGRESS: {ListingStatus.RESOLVED, ListingStatus.EXPIRED},
    # Terminal states — no outgoing transitions
    ListingStatus.RESOLVED: set(),
    ListingStatus.EXPIRED: set(),
}


class ListingStateMachine:
    """Validates and applies listing status transitions.

    Pure computation: side effects (notifications, persistence, counter
    synchronisation) are handled by the service layer.
    """

    @staticmethod
    def validate_transition(
        listing: Listing,
        target: ListingStatus,
    ) -> list[str]:
        """Check if a transition is valid. Returns errors (empty = OK)."""
        current = listing.status
        allowed = ListingStateMachine.valid_transitions(current)

        if target not in allowed:
            allowed_str = ", ".join(s.value for s in sorted(allowed, key=lambda x: x.value))
            return [
                f"Invalid listing transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def apply_transition(
        listing: Listing,
        target: ListingStatus,
    ) -> None:
        """Validate and apply a status transition.

        Raises InvalidStateError if the transition is not allowed; the
        listing is left untouched in that case.
        """
        errors = ListingStateMachine.validate_transition(listing, target)
        if errors:
            raise InvalidStateError(errors[0])
        listing.status = target

    @staticmethod
    def is_terminal(status: ListingStatus) -> bool:
        return status in (ListingStatus.RESOLVED, ListingStatus.EXPIRED)

    @staticmethod
    def valid_transitions(status: ListingStatus) -> set[ListingStatus]:
        """Return the set of valid target statuses from the given status."""
        return set(_TRANSITIONS.get(status, set()))
