"""Member profile models — directory records and reputation counters.

A profile is keyed by member id. It is created once and never deleted:
deactivation only flips is_active, which hides the profile from every
indexed lookup while the record itself is retained.

last_status_update doubles as the existence sentinel: it is None if and
only if no profile has ever been created for that member.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ProfileStats:
    """Reputation counters for a single member."""
    listings_completed: int = 0
    total_listings_created: int = 0
    total_responses: int = 0


@dataclass
class Profile:
    """A member's directory record.

    expertise_areas is order-irrelevant and set-like, but duplicates are
    kept as given. Deduplication is the caller's responsibility.
    """
    member_id: str
    is_active: bool = False
    contact_info: str = ""
    on_site: bool = False
    travel_details: str = ""
    expertise_areas: list[str] = field(default_factory=list)
    credentials: str = ""
    bio: str = ""
    listings_completed: int = 0
    total_listings_created: int = 0
    total_responses: int = 0
    last_status_update: Optional[datetime] = None
    last_active: Optional[datetime] = None

    @property
    def exists(self) -> bool:
        """True once create_profile has succeeded for this member."""
        return self.last_status_update is not None

    @property
    def stats(self) -> ProfileStats:
        return ProfileStats(
            listings_completed=self.listings_completed,
            total_listings_created=self.total_listings_created,
            total_responses=self.total_responses,
        )

    def copy(self) -> Profile:
        """Detached copy, safe to hand to readers."""
        return Profile(
            member_id=self.member_id,
            is_active=self.is_active,
            contact_info=self.contact_info,
            on_site=self.on_site,
            travel_details=self.travel_details,
            expertise_areas=list(self.expertise_areas),
            credentials=self.credentials,
            bio=self.bio,
            listings_completed=self.listings_completed,
            total_listings_created=self.total_listings_created,
            total_responses=self.total_responses,
            last_status_update=self.last_status_update,
            last_active=self.last_active,
        )
