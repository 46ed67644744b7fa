"""Profile directory — member records, expertise index, reputation counters.

The directory is the source of truth for who is a member and what they
advertise. It maintains:
- Profile records keyed by member id (never deleted, only deactivated)
- The roster: member ids in profile-creation order
- The expertise index: tag → member ids currently advertising that tag
- Reputation counters (listings created, responses given, completions)

Index invariants enforced:
- After create/update the index holds the member exactly under the
  profile's current expertise_areas. Old entries are removed before new
  ones are added, so repeated edits never leak stale or duplicate tags.
- Deactivation does not touch the index. Every indexed lookup filters
  inactive members at query time instead.

Counter writes are capability-restricted: only the writer bound through
bind_stats_writer() may overwrite reputation counters.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog

from guildhall.errors import (
    AlreadyExistsError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from guildhall.models.profile import Profile, ProfileStats

logger = structlog.get_logger(__name__)


class ProfileDirectory:
    """Registry of member profiles with an expertise inverted index.

    Thread-safety: this class is not thread-safe. The caller must
    serialise mutating calls.
    """

    def __init__(self, bio_max_length: int = 1000) -> None:
        self._bio_max_length = bio_max_length
        self._profiles: dict[str, Profile] = {}
        self._roster: list[str] = []
        self._expertise_index: dict[str, list[str]] = {}
        self._stats_writer: Optional[object] = None

    # ------------------------------------------------------------------
    # Profile lifecycle
    # ------------------------------------------------------------------

    def create_profile(
        self,
        caller_id: str,
        contact_info: str,
        on_site: bool,
        travel_details: str,
        expertise_areas: list[str],
        credentials: str,
        bio: str,
        now: Optional[datetime] = None,
    ) -> Profile:
        """Create the caller's profile.

        Raises:
            AlreadyExistsError: caller already has a profile.
            InvalidInputError: blank caller id, empty contact_info, or
                bio longer than the configured maximum.
        """
        member_id = caller_id.strip()
        if not member_id:
            raise InvalidInputError("Cannot create profile with blank member ID")
        if self.has_profile(member_id):
            raise AlreadyExistsError(f"Profile already exists: {member_id}")
        if not contact_info:
            raise InvalidInputError("Contact info is required")
        self._check_bio(bio)

        ts = now or datetime.now(timezone.utc)
        profile = Profile(
            member_id=member_id,
            is_active=True,
            contact_info=contact_info,
            on_site=on_site,
            travel_details=travel_details,
            expertise_areas=list(expertise_areas),
            credentials=credentials,
            bio=bio,
            last_status_update=ts,
            last_active=ts,
        )
        self._profiles[member_id] = profile
        self._roster.append(member_id)
        self._index_add(member_id, profile.expertise_areas)
        return profile.copy()

    def update_profile(
        self,
        caller_id: str,
        contact_info: str,
        on_site: bool,
        travel_details: str,
        expertise_areas: list[str],
        credentials: str,
        bio: str,
        now: Optional[datetime] = None,
    ) -> tuple[list[str], list[str]]:
        """Replace the caller's mutable profile fields.

        Returns (old_tags, new_tags). The index swap happens entirely
        inside this call: stale tags are removed, then new tags inserted.
        """
        profile = self._require(caller_id)
        self._check_bio(bio)

        ts = now or datetime.now(timezone.utc)
        old_tags = list(profile.expertise_areas)
        new_tags = list(expertise_areas)

        self._index_remove(profile.member_id, old_tags)
        profile.contact_info = contact_info
        profile.on_site = on_site
        profile.travel_details = travel_details
        profile.expertise_areas = new_tags
        profile.credentials = credentials
        profile.bio = bio
        profile.last_status_update = ts
        profile.last_active = ts
        self._index_add(profile.member_id, new_tags)
        return old_tags, list(new_tags)

    def deactivate_profile(
        self, caller_id: str, now: Optional[datetime] = None,
    ) -> Profile:
        """Hide the caller's profile from indexed lookups.

        The record and its index entries are retained.
        """
        profile = self._require(caller_id)
        ts = now or datetime.now(timezone.utc)
        profile.is_active = False
        profile.last_status_update = ts
        return profile.copy()

    # ------------------------------------------------------------------
    # Reputation counters
    # ------------------------------------------------------------------

    def bind_stats_writer(self, writer: object) -> None:
        """Grant counter-write capability to a single owner.

        Binding is one-shot: once a writer is bound, no other object can
        claim the capability.
        """
        if self._stats_writer is not None and self._stats_writer is not writer:
            raise UnauthorizedError("Stats writer already bound")
        self._stats_writer = writer

    def update_profile_stats(
        self,
        member_id: str,
        completed: int,
        created: int,
        responses: int,
        *,
        writer: object,
        now: Optional[datetime] = None,
    ) -> ProfileStats:
        """Overwrite all three reputation counters and refresh last_active."""
        if self._stats_writer is None or writer is not self._stats_writer:
            raise UnauthorizedError("Caller may not write reputation counters")
        profile = self._require(member_id)
        if min(completed, created, responses) < 0:
            raise InvalidInputError(
                f"Reputation counters must be non-negative, got "
                f"({completed}, {created}, {responses})"
            )
        profile.listings_completed = completed
        profile.total_listings_created = created
        profile.total_responses = responses
        profile.last_active = now or datetime.now(timezone.utc)
        return profile.stats

    def restore_stats(
        self,
        member_id: str,
        stats: ProfileStats,
        last_active: Optional[datetime],
        *,
        writer: object,
    ) -> None:
        """Put counters back to a snapshot taken before a failed operation."""
        if writer is not self._stats_writer:
            raise UnauthorizedError("Caller may not write reputation counters")
        profile = self._require(member_id)
        profile.listings_completed = stats.listings_completed
        profile.total_listings_created = stats.total_listings_created
        profile.total_responses = stats.total_responses
        profile.last_active = last_active

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def has_profile(self, member_id: str) -> bool:
        profile = self._profiles.get(member_id.strip())
        return profile is not None and profile.exists

    def has_active_profile(self, member_id: str) -> bool:
        profile = self._profiles.get(member_id.strip())
        return profile is not None and profile.exists and profile.is_active

    def get_profile(self, member_id: str) -> Profile:
        """Return a copy of the profile, or a zero-valued record on miss."""
        profile = self._profiles.get(member_id.strip())
        if profile is None:
            return Profile(member_id=member_id.strip())
        return profile.copy()

    def get_user_stats(self, member_id: str) -> ProfileStats:
        profile = self._profiles.get(member_id.strip())
        if profile is None:
            return ProfileStats()
        return profile.stats

    def get_profiles_by_expertise(self, tag: str) -> list[Profile]:
        """Active profiles advertising a tag, each member reported once."""
        return self._active_profiles(self._expertise_index.get(tag, []))

    def get_all_active_profiles(self) -> list[Profile]:
        return self._active_profiles(self._roster)

    def get_profiles_by_on_site_status(self, on_site: bool) -> list[Profile]:
        return [p for p in self.get_all_active_profiles() if p.on_site == on_site]

    def expertise_members(self, tag: str) -> list[str]:
        """Raw index entries for a tag, inactive members included."""
        return list(self._expertise_index.get(tag, []))

    def expertise_tags(self) -> list[str]:
        """Tags with at least one index entry."""
        return [tag for tag, members in self._expertise_index.items() if members]

    def roster(self) -> list[str]:
        """Member ids in profile-creation order."""
        return list(self._roster)

    def all_profiles(self) -> list[Profile]:
        return [self._profiles[m].copy() for m in self._roster]

    @property
    def count(self) -> int:
        return len(self._roster)

    @property
    def active_count(self) -> int:
        return sum(1 for p in self._profiles.values() if p.is_active)

    # ------------------------------------------------------------------
    # Recovery and rollback
    # ------------------------------------------------------------------

    def load(self, profiles: list[Profile]) -> None:
        """Populate from persisted records, rebuilding roster and index."""
        self._profiles.clear()
        self._roster.clear()
        self._expertise_index.clear()
        for profile in profiles:
            self._profiles[profile.member_id] = profile.copy()
            self._roster.append(profile.member_id)
            self._index_add(profile.member_id, profile.expertise_areas)
        logger.debug("profile_directory_loaded", profiles=len(profiles))

    def discard_profile(self, member_id: str) -> None:
        """Undo a create_profile whose surrounding operation failed."""
        profile = self._profiles.pop(member_id, None)
        if profile is None:
            return
        self._index_remove(member_id, profile.expertise_areas)
        if self._roster and self._roster[-1] == member_id:
            self._roster.pop()
        else:
            self._roster.remove(member_id)

    def restore_profile(self, snapshot: Profile) -> None:
        """Undo an update or deactivation whose surrounding operation failed."""
        current = self._profiles[snapshot.member_id]
        self._index_remove(snapshot.member_id, current.expertise_areas)
        self._profiles[snapshot.member_id] = snapshot.copy()
        self._index_add(snapshot.member_id, snapshot.expertise_areas)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, member_id: str) -> Profile:
        profile = self._profiles.get(member_id.strip())
        if profile is None or not profile.exists:
            raise NotFoundError(f"Profile not found: {member_id}")
        return profile

    def _check_bio(self, bio: str) -> None:
        if len(bio) > self._bio_max_length:
            raise InvalidInputError(
                f"Bio exceeds {self._bio_max_length} characters ({len(bio)})"
            )

    def _index_add(self, member_id: str, tags: list[str]) -> None:
        for tag in tags:
            self._expertise_index.setdefault(tag, []).append(member_id)

    def _index_remove(self, member_id: str, tags: list[str]) -> None:
        # Swap-remove one entry per tag occurrence; order is not preserved.
        for tag in tags:
            members = self._expertise_index.get(tag)
            if not members:
                continue
            for i, m in enumerate(members):
                if m == member_id:
                    members[i] = members[-1]
                    members.pop()
                    break
            if not members:
                del self._expertise_index[tag]

    def _active_profiles(self, member_ids: list[str]) -> list[Profile]:
        seen: set[str] = set()
        result: list[Profile] = []
        for member_id in member_ids:
            if member_id in seen:
                continue
            seen.add(member_id)
            profile = self._profiles.get(member_id)
            if profile is not None and profile.is_active:
                result.append(profile.copy())
        return result
