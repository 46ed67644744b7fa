"""State store — JSON-based persistence for directory runtime state.

Stores and recovers:
- Member profiles, in roster (creation) order
- Listings and the listing id counter
- The category registry

The expertise index and the per-member listing index are derived data and
are rebuilt on load rather than stored.

This is a simple file-based store suitable for single-node deployment.
Production deployments would replace this with a database backend while
keeping the same interface.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from guildhall.directory.profile_directory import ProfileDirectory
from guildhall.market.categories import CategoryRegistry
from guildhall.models.listing import ExpertiseType, Listing, ListingStatus
from guildhall.models.profile import Profile


_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT) if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class StateStore:
    """JSON file-based state persistence.

    Usage:
        store = StateStore(Path("data/state.json"))
        store.save_all(directory, listings, counter, categories)

        # On recovery:
        directory.load(store.load_profiles())
        listings, counter = store.load_listings()
    """

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path
        self._state: dict[str, Any] = {}
        if storage_path.exists():
            self._load()

    def _load(self) -> None:
        with self._path.open("r", encoding="utf-8") as f:
            self._state = json.load(f)

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(self._state, f, indent=2, sort_keys=True, ensure_ascii=False)
        tmp.replace(self._path)

    @property
    def has_state(self) -> bool:
        return bool(self._state)

    def save_all(
        self,
        directory: ProfileDirectory,
        listings: list[Listing],
        counter: int,
        categories: CategoryRegistry,
    ) -> None:
        """Serialize everything and write the file once."""
        self._state["profiles"] = [_profile_to_dict(p) for p in directory.all_profiles()]
        self._state["listings"] = [_listing_to_dict(l) for l in listings]
        self._state["listing_counter"] = counter
        self._state["categories"] = categories.all()
        self._save()

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def load_profiles(self) -> list[Profile]:
        return [_profile_from_dict(d) for d in self._state.get("profiles", [])]

    def load_listings(self) -> tuple[list[Listing], int]:
        listings = [_listing_from_dict(d) for d in self._state.get("listings", [])]
        return listings, self._state.get("listing_counter", 0)

    def load_categories(self) -> Optional[list[str]]:
        """Stored category names, or None if never saved."""
        names = self._state.get("categories")
        return list(names) if names is not None else None


def _profile_to_dict(profile: Profile) -> dict[str, Any]:
    return {
        "member_id": profile.member_id,
        "is_active": profile.is_active,
        "contact_info": profile.contact_info,
        "on_site": profile.on_site,
        "travel_details": profile.travel_details,
        "expertise_areas": list(profile.expertise_areas),
        "credentials": profile.credentials,
        "bio": profile.bio,
        "listings_completed": profile.listings_completed,
        "total_listings_created": profile.total_listings_created,
        "total_responses": profile.total_responses,
        "last_status_update": _ts(profile.last_status_update),
        "last_active": _ts(profile.last_active),
    }


def _profile_from_dict(data: dict[str, Any]) -> Profile:
    return Profile(
        member_id=data["member_id"],
        is_active=data["is_active"],
        contact_info=data["contact_info"],
        on_site=data["on_site"],
        travel_details=data.get("travel_details", ""),
        expertise_areas=list(data.get("expertise_areas", [])),
        credentials=data.get("credentials", ""),
        bio=data.get("bio", ""),
        listings_completed=data.get("listings_completed", 0),
        total_listings_created=data.get("total_listings_created", 0),
        total_responses=data.get("total_responses", 0),
        last_status_update=_parse_ts(data["last_status_update"]),
        last_active=_parse_ts(data.get("last_active")),
    )


def _listing_to_dict(listing: Listing) -> dict[str, Any]:
    return {
        "listing_id": listing.listing_id,
        "creator_id": listing.creator_id,
        "title": listing.title,
        "description": listing.description,
        "category": listing.category,
        "is_project": listing.is_project,
        "expertise_type": listing.expertise_type.value,
        "expertise": listing.expertise,
        "contact_method": listing.contact_method,
        "created_utc": _ts(listing.created_utc),
        "active": listing.active,
        "status": listing.status.value,
        "responder_id": listing.responder_id,
        "responded_utc": _ts(listing.responded_utc),
        "resolved_utc": _ts(listing.resolved_utc),
        "updated_utc": _ts(listing.updated_utc),
    }


def _listing_from_dict(data: dict[str, Any]) -> Listing:
    return Listing(
        listing_id=data["listing_id"],
        creator_id=data["creator_id"],
        title=data["title"],
        description=data["description"],
        category=data["category"],
        is_project=data["is_project"],
        expertise_type=ExpertiseType(data["expertise_type"]),
        expertise=data["expertise"],
        contact_method=data["contact_method"],
        created_utc=_parse_ts(data["created_utc"]),
        active=data["active"],
        status=ListingStatus(data["status"]),
        responder_id=data.get("responder_id"),
        responded_utc=_parse_ts(data.get("responded_utc")),
        resolved_utc=_parse_ts(data.get("resolved_utc")),
        updated_utc=_parse_ts(data.get("updated_utc")),
    )
