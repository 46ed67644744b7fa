"""Listing models — projects and help requests posted by members.

Listing lifecycle: OPEN → IN_PROGRESS → RESOLVED
                   OPEN | IN_PROGRESS → EXPIRED (creator deactivation)

Time-based expiry is never stored: a listing past its duration can still
read OPEN while ListingStore.is_expired() reports True. Only an explicit
deactivation writes EXPIRED.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional


class ListingStatus(str, enum.Enum):
    """Lifecycle state of a listing."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    EXPIRED = "expired"


class ExpertiseType(str, enum.Enum):
    """Whether the creator is looking for expertise or offering it."""
    SEEKING = "seeking"
    OFFERING = "offering"


@dataclass
class Listing:
    """A posted project or help request.

    listing_id is 1-based and allocated sequentially; 0 is never valid.
    responder_id is set exactly once, on OPEN → IN_PROGRESS.
    """
    listing_id: int
    creator_id: str
    title: str
    description: str
    category: str
    is_project: bool
    expertise_type: ExpertiseType
    expertise: str
    contact_method: str
    created_utc: datetime
    active: bool = True
    status: ListingStatus = ListingStatus.OPEN
    responder_id: Optional[str] = None
    responded_utc: Optional[datetime] = None
    resolved_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None

    def copy(self) -> Listing:
        return replace(self)
