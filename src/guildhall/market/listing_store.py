"""Listing store — listing records, lifecycle guards, and filtered queries.

The store owns:
- Listing records keyed by sequential integer id (1-based)
- The per-member "my listings" index

Member ids are stripped of surrounding whitespace before they are stored
or compared, matching the ProfileDirectory.

It consults the ProfileDirectory only through has_profile /
has_active_profile, and the CategoryRegistry only through exists(). It
never touches reputation counters; the service layer pushes those after a
successful transition.

Expiry is lazy: a listing is expired once now >= created_utc + duration.
Every guard recomputes it; nothing is written when it becomes true.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from guildhall.directory.profile_directory import ProfileDirectory
from guildhall.errors import (
    ExpiredError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    SelfReferenceError,
    UnauthorizedError,
)
from guildhall.market.categories import CategoryRegistry
from guildhall.market.listing_state_machine import ListingStateMachine
from guildhall.models.listing import ExpertiseType, Listing, ListingStatus


DEFAULT_LISTING_DURATION = timedelta(days=15)


class ListingStore:
    """Registry of listings and their lifecycle.

    Thread-safety: this class is not thread-safe. The caller must
    serialise mutating calls.
    """

    def __init__(
        self,
        directory: ProfileDirectory,
        categories: CategoryRegistry,
        listing_duration: timedelta = DEFAULT_LISTING_DURATION,
    ) -> None:
        self._directory = directory
        self._categories = categories
        self._duration = listing_duration
        self._listings: dict[int, Listing] = {}
        self._user_listings: dict[str, list[int]] = {}
        self._counter = 0

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_listing(
        self,
        caller_id: str,
        title: str,
        description: str,
        category: str,
        is_project: bool,
        expertise_type: ExpertiseType,
        expertise: str,
        contact_method: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Post a new OPEN listing and return a copy of it."""
        caller_id = caller_id.strip()
        self._require_active_profile(caller_id)
        self._check_fields(title, description, category)
        kind = _expertise_type(expertise_type)

        self._counter += 1
        listing = Listing(
            listing_id=self._counter,
            creator_id=caller_id,
            title=title,
            description=description,
            category=category,
            is_project=is_project,
            expertise_type=kind,
            expertise=expertise,
            contact_method=contact_method,
            created_utc=now or datetime.now(timezone.utc),
        )
        self._listings[listing.listing_id] = listing
        self._user_listings.setdefault(caller_id, []).append(listing.listing_id)
        return listing.copy()

    def update_listing(
        self,
        caller_id: str,
        listing_id: int,
        title: str,
        description: str,
        category: str,
        is_project: bool,
        expertise_type: ExpertiseType,
        expertise: str,
        contact_method: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Replace descriptive fields of an open listing.

        Status, creator and responder are never touched here.
        """
        ts = now or datetime.now(timezone.utc)
        listing = self._require(listing_id)
        self._require_creator(listing, caller_id)
        if not listing.active:
            raise InvalidStateError(f"Listing {listing_id} is not active")
        if listing.status != ListingStatus.OPEN:
            raise InvalidStateError(
                f"Listing {listing_id} can only be updated while open "
                f"(status: {listing.status.value})"
            )
        self._require_not_expired(listing, ts)
        self._check_fields(title, description, category)
        kind = _expertise_type(expertise_type)

        listing.title = title
        listing.description = description
        listing.category = category
        listing.is_project = is_project
        listing.expertise_type = kind
        listing.expertise = expertise
        listing.contact_method = contact_method
        listing.updated_utc = ts
        return listing.copy()

    def respond_to_listing(
        self,
        caller_id: str,
        listing_id: int,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Take on an open listing: OPEN → IN_PROGRESS, responder = caller."""
        caller_id = caller_id.strip()
        ts = now or datetime.now(timezone.utc)
        listing = self._require(listing_id)
        if not listing.active:
            raise InvalidStateError(f"Listing {listing_id} is not active")
        if listing.status != ListingStatus.OPEN:
            raise InvalidStateError(
                f"Listing {listing_id} is not open for responses "
                f"(status: {listing.status.value})"
            )
        self._require_not_expired(listing, ts)
        self._require_active_profile(caller_id)
        if caller_id == listing.creator_id:
            raise SelfReferenceError(
                f"Creator cannot respond to their own listing {listing_id}"
            )

        ListingStateMachine.apply_transition(listing, ListingStatus.IN_PROGRESS)
        listing.responder_id = caller_id
        listing.responded_utc = ts
        return listing.copy()

    def mark_resolved(
        self,
        caller_id: str,
        listing_id: int,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Confirm completion: IN_PROGRESS → RESOLVED.

        Expiry is deliberately not checked: an engagement that already has
        a responder completes regardless of elapsed time.
        """
        listing = self._require(listing_id)
        self._require_creator(listing, caller_id)
        if listing.status != ListingStatus.IN_PROGRESS:
            raise InvalidStateError(
                f"Listing {listing_id} is not in progress "
                f"(status: {listing.status.value})"
            )
        ListingStateMachine.apply_transition(listing, ListingStatus.RESOLVED)
        listing.resolved_utc = now or datetime.now(timezone.utc)
        return listing.copy()

    def deactivate_listing(
        self,
        caller_id: str,
        listing_id: int,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Creator-initiated early termination: active=False, EXPIRED."""
        listing = self._require(listing_id)
        self._require_creator(listing, caller_id)
        if not listing.active:
            raise InvalidStateError(f"Listing {listing_id} is already inactive")
        if ListingStateMachine.is_terminal(listing.status):
            raise InvalidStateError(
                f"Listing {listing_id} is {listing.status.value} and cannot be withdrawn"
            )
        ListingStateMachine.apply_transition(listing, ListingStatus.EXPIRED)
        listing.active = False
        listing.updated_utc = now or datetime.now(timezone.utc)
        return listing.copy()

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expires_at(self, listing: Listing) -> datetime:
        return listing.created_utc + self._duration

    def is_expired(self, listing_id: int, now: Optional[datetime] = None) -> bool:
        """Pure function of the listing's creation time and now."""
        listing = self._require(listing_id)
        return self._expired(listing, now or datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_listing(self, listing_id: int) -> Optional[Listing]:
        listing = self._listings.get(listing_id)
        return listing.copy() if listing is not None else None

    def get_active_listings(self, now: Optional[datetime] = None) -> list[Listing]:
        """Active, OPEN and not yet expired."""
        ts = now or datetime.now(timezone.utc)
        return [
            l.copy() for l in self._in_id_order()
            if l.active
            and l.status == ListingStatus.OPEN
            and not self._expired(l, ts)
        ]

    def get_listings_by_status(self, status: ListingStatus) -> list[Listing]:
        """Listings whose stored status matches (lazy expiry is not applied)."""
        return [l.copy() for l in self._in_id_order() if l.status == status]

    def get_user_listings(self, member_id: str) -> list[Listing]:
        return [
            self._listings[i].copy()
            for i in self._user_listings.get(member_id.strip(), [])
        ]

    def get_listings_by_expertise(
        self, expertise: str, now: Optional[datetime] = None,
    ) -> list[Listing]:
        """Exact, case-sensitive expertise match among live listings."""
        ts = now or datetime.now(timezone.utc)
        return [
            l.copy() for l in self._in_id_order()
            if l.expertise == expertise
            and l.active
            and not self._expired(l, ts)
        ]

    def all_listings(self) -> list[Listing]:
        return [l.copy() for l in self._in_id_order()]

    @property
    def count(self) -> int:
        """Number of ids allocated so far (also the highest valid id)."""
        return self._counter

    # ------------------------------------------------------------------
    # Recovery and rollback
    # ------------------------------------------------------------------

    def load(self, listings: list[Listing], counter: int) -> None:
        """Populate from persisted records, rebuilding the member index."""
        self._listings.clear()
        self._user_listings.clear()
        for listing in sorted(listings, key=lambda l: l.listing_id):
            self._listings[listing.listing_id] = listing.copy()
            self._user_listings.setdefault(listing.creator_id, []).append(
                listing.listing_id
            )
        self._counter = max([counter] + list(self._listings))

    def discard_listing(self, listing_id: int) -> None:
        """Undo the most recent create_listing."""
        if listing_id != self._counter:
            raise InvalidStateError(
                f"Only the most recent listing can be discarded ({self._counter})"
            )
        listing = self._listings.pop(listing_id)
        ids = self._user_listings.get(listing.creator_id, [])
        if ids and ids[-1] == listing_id:
            ids.pop()
        if not ids:
            self._user_listings.pop(listing.creator_id, None)
        self._counter -= 1

    def restore_listing(self, snapshot: Listing) -> None:
        """Put a listing back to a copy taken before a failed operation."""
        self._require(snapshot.listing_id)
        self._listings[snapshot.listing_id] = snapshot.copy()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _in_id_order(self) -> list[Listing]:
        return [self._listings[i] for i in range(1, self._counter + 1) if i in self._listings]

    def _expired(self, listing: Listing, now: datetime) -> bool:
        return now >= listing.created_utc + self._duration

    def _require(self, listing_id: int) -> Listing:
        listing = self._listings.get(listing_id)
        if listing is None:
            raise NotFoundError(f"Listing not found: {listing_id}")
        return listing

    def _require_creator(self, listing: Listing, caller_id: str) -> None:
        if listing.creator_id != caller_id.strip():
            raise UnauthorizedError(
                f"Only the creator may modify listing {listing.listing_id}"
            )

    def _require_not_expired(self, listing: Listing, now: datetime) -> None:
        if self._expired(listing, now):
            raise ExpiredError(
                f"Listing {listing.listing_id} expired at "
                f"{self.expires_at(listing).isoformat()}"
            )

    def _require_active_profile(self, member_id: str) -> None:
        if not self._directory.has_profile(member_id):
            raise NotFoundError(f"Profile not found: {member_id}")
        if not self._directory.has_active_profile(member_id):
            raise UnauthorizedError(f"Profile is inactive: {member_id}")

    def _check_fields(self, title: str, description: str, category: str) -> None:
        if not title:
            raise InvalidInputError("Title is required")
        if not description:
            raise InvalidInputError("Description is required")
        if not self._categories.exists(category):
            raise InvalidInputError(f"Unknown category: {category}")


def _expertise_type(value: ExpertiseType | str) -> ExpertiseType:
    try:
        return ExpertiseType(value)
    except ValueError:
        raise InvalidInputError(f"Unknown expertise type: {value}") from None
