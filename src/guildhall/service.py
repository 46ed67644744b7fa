"""Directory service — unified facade over profiles and listings.

This is the primary interface for programmatic access to the marketplace
directory. It orchestrates:
- Profile lifecycle (create, update, deactivate) in the ProfileDirectory
- Listing lifecycle (create, update, respond, resolve, deactivate) in the
  ListingStore
- Reputation counter synchronisation between the two stores
- Category administration
- Notifications (event log + subscribed listeners)
- Persistence (state store)

Execution model: every mutating call runs inside a single guard. A
mutating call made while another one is in progress (for example from a
notification listener) is rejected without effect. Each mutation is
all-or-nothing: if any step fails before its notification is recorded,
every change made by the call is rolled back.

All operations produce typed results. Rejections carry the specific
ErrorKind and a human-readable reason.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional

import structlog

from guildhall.directory.profile_directory import ProfileDirectory
from guildhall.errors import (
    DirectoryError,
    ErrorKind,
    InvalidStateError,
    PersistenceError,
    ReentrancyError,
    UnauthorizedError,
)
from guildhall.market.categories import CategoryRegistry
from guildhall.market.listing_store import ListingStore
from guildhall.models.listing import ExpertiseType, Listing, ListingStatus
from guildhall.models.profile import Profile, ProfileStats
from guildhall.persistence.event_log import EventKind, EventLog, EventRecord
from guildhall.persistence.state_store import StateStore
from guildhall.policy.resolver import PolicyResolver

logger = structlog.get_logger(__name__)

Listener = Callable[[EventRecord], None]
Undo = list[Callable[[], None]]
PendingEvent = tuple[EventKind, str, dict[str, Any]]


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ListingDirectoryService:
    """Marketplace directory facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = ListingDirectoryService(resolver)

        service.create_profile("alice", contact_info="alice@example.org", ...)
        result = service.create_listing("alice", title="...", ...)
        service.respond_to_listing("bob", result.data["listing_id"])
        service.mark_resolved("alice", result.data["listing_id"])

    Persistence (optional):
        service = ListingDirectoryService(resolver, event_log=log, state_store=store)
        # State is persisted on each mutation and loaded on construction.

    Thread-safety: not thread-safe. Mutating calls must be serialised by
    the caller; the internal guard only rejects nested re-entry.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._resolver = resolver
        self._clock = clock or _utc_now
        self._admins = resolver.admin_ids()

        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store

        self._directory = ProfileDirectory(bio_max_length=resolver.bio_max_length())
        self._directory.bind_stats_writer(self)

        category_names = resolver.default_categories()
        if state_store is not None and state_store.has_state:
            stored = state_store.load_categories()
            if stored is not None:
                category_names = stored
        self._categories = CategoryRegistry(category_names)

        self._listings = ListingStore(
            self._directory,
            self._categories,
            listing_duration=resolver.listing_duration(),
        )

        if state_store is not None and state_store.has_state:
            self._directory.load(state_store.load_profiles())
            listings, counter = state_store.load_listings()
            self._listings.load(listings, counter)
            logger.info(
                "state_loaded",
                profiles=self._directory.count,
                listings=self._listings.count,
            )

        self._listeners: list[Listener] = []
        self._in_mutation = False
        # Continue numbering from the persisted log to avoid ID collisions
        self._event_counter = self._event_log.count
        self._persistence_degraded = False

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def create_profile(
        self,
        caller_id: str,
        contact_info: str,
        on_site: bool = False,
        travel_details: str = "",
        expertise_areas: Optional[list[str]] = None,
        credentials: str = "",
        bio: str = "",
    ) -> ServiceResult:
        """Create the caller's profile. Emits PROFILE_CREATED."""
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            profile = self._directory.create_profile(
                caller_id, contact_info, on_site, travel_details,
                expertise_areas or [], credentials, bio, now=now,
            )
            undo.append(lambda: self._directory.discard_profile(profile.member_id))
            return (
                [(EventKind.PROFILE_CREATED, profile.member_id, {
                    "member_id": profile.member_id,
                    "expertise_areas": list(profile.expertise_areas),
                })],
                {"member_id": profile.member_id},
            )

        return self._execute("create_profile", caller_id, _apply)

    def update_profile(
        self,
        caller_id: str,
        contact_info: str,
        on_site: bool = False,
        travel_details: str = "",
        expertise_areas: Optional[list[str]] = None,
        credentials: str = "",
        bio: str = "",
    ) -> ServiceResult:
        """Replace the caller's profile fields and re-index expertise.

        Emits PROFILE_UPDATED and EXPERTISE_UPDATED(old, new).
        """
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            snapshot = self._directory.get_profile(caller_id)
            old_tags, new_tags = self._directory.update_profile(
                caller_id, contact_info, on_site, travel_details,
                expertise_areas or [], credentials, bio, now=now,
            )
            undo.append(lambda: self._directory.restore_profile(snapshot))
            member_id = snapshot.member_id
            return (
                [
                    (EventKind.PROFILE_UPDATED, member_id, {"member_id": member_id}),
                    (EventKind.EXPERTISE_UPDATED, member_id, {
                        "member_id": member_id,
                        "old_expertise": old_tags,
                        "new_expertise": new_tags,
                    }),
                ],
                {"member_id": member_id, "old_expertise": old_tags, "new_expertise": new_tags},
            )

        return self._execute("update_profile", caller_id, _apply)

    def deactivate_profile(self, caller_id: str) -> ServiceResult:
        """Hide the caller's profile from lookups. Emits PROFILE_DEACTIVATED."""
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            snapshot = self._directory.get_profile(caller_id)
            profile = self._directory.deactivate_profile(caller_id, now=now)
            undo.append(lambda: self._directory.restore_profile(snapshot))
            return (
                [(EventKind.PROFILE_DEACTIVATED, profile.member_id, {"member_id": profile.member_id})],
                {"member_id": profile.member_id, "is_active": profile.is_active},
            )

        return self._execute("deactivate_profile", caller_id, _apply)

    def get_profile(self, member_id: str) -> Profile:
        """Profile copy; zero-valued (exists == False) when absent."""
        return self._directory.get_profile(member_id)

    def get_user_stats(self, member_id: str) -> ProfileStats:
        return self._directory.get_user_stats(member_id)

    def get_profiles_by_expertise(self, tag: str) -> list[Profile]:
        return self._directory.get_profiles_by_expertise(tag)

    def get_all_active_profiles(self) -> list[Profile]:
        return self._directory.get_all_active_profiles()

    def get_profiles_by_on_site_status(self, on_site: bool) -> list[Profile]:
        return self._directory.get_profiles_by_on_site_status(on_site)

    # ------------------------------------------------------------------
    # Listings
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
    ) -> ServiceResult:
        """Post a listing and credit the creator's total_listings_created."""
        caller_id = caller_id.strip()
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            listing = self._listings.create_listing(
                caller_id, title, description, category, is_project,
                expertise_type, expertise, contact_method, now=now,
            )
            undo.append(lambda: self._listings.discard_listing(listing.listing_id))
            self._push_stats(caller_id, undo, now, created=1)
            return (
                [(EventKind.LISTING_CREATED, caller_id, {
                    "listing_id": listing.listing_id,
                    "creator_id": caller_id,
                    "category": listing.category,
                    "expertise": listing.expertise,
                })],
                {"listing_id": listing.listing_id, "status": listing.status.value},
            )

        return self._execute("create_listing", caller_id, _apply)

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
    ) -> ServiceResult:
        """Replace the descriptive fields of an open listing."""
        caller_id = caller_id.strip()
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            snapshot = self._listings.get_listing(listing_id)
            listing = self._listings.update_listing(
                caller_id, listing_id, title, description, category,
                is_project, expertise_type, expertise, contact_method, now=now,
            )
            undo.append(lambda: self._listings.restore_listing(snapshot))
            return (
                [(EventKind.LISTING_UPDATED, caller_id, {
                    "listing_id": listing_id, "creator_id": caller_id,
                })],
                {"listing_id": listing_id, "status": listing.status.value},
            )

        return self._execute("update_listing", caller_id, _apply)

    def respond_to_listing(self, caller_id: str, listing_id: int) -> ServiceResult:
        """Take on a listing and credit the responder's total_responses."""
        caller_id = caller_id.strip()
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            snapshot = self._listings.get_listing(listing_id)
            listing = self._listings.respond_to_listing(caller_id, listing_id, now=now)
            undo.append(lambda: self._listings.restore_listing(snapshot))
            self._push_stats(caller_id, undo, now, responses=1)
            return (
                [(EventKind.LISTING_RESPONDED, caller_id, {
                    "listing_id": listing_id,
                    "creator_id": listing.creator_id,
                    "responder_id": caller_id,
                })],
                {
                    "listing_id": listing_id,
                    "status": listing.status.value,
                    "responder_id": caller_id,
                },
            )

        return self._execute("respond_to_listing", caller_id, _apply)

    def mark_resolved(self, caller_id: str, listing_id: int) -> ServiceResult:
        """Resolve an in-progress listing.

        Credits listings_completed to the creator and then, in a separate
        read-modify-write, to the responder.
        """
        caller_id = caller_id.strip()
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            snapshot = self._listings.get_listing(listing_id)
            listing = self._listings.mark_resolved(caller_id, listing_id, now=now)
            undo.append(lambda: self._listings.restore_listing(snapshot))
            self._push_stats(listing.creator_id, undo, now, completed=1)
            self._push_stats(listing.responder_id, undo, now, completed=1)
            return (
                [(EventKind.LISTING_RESOLVED, caller_id, {
                    "listing_id": listing_id,
                    "creator_id": listing.creator_id,
                    "responder_id": listing.responder_id,
                })],
                {
                    "listing_id": listing_id,
                    "status": listing.status.value,
                    "responder_id": listing.responder_id,
                },
            )

        return self._execute("mark_resolved", caller_id, _apply)

    def deactivate_listing(self, caller_id: str, listing_id: int) -> ServiceResult:
        """Withdraw a listing early: inactive and EXPIRED."""
        caller_id = caller_id.strip()
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            snapshot = self._listings.get_listing(listing_id)
            listing = self._listings.deactivate_listing(caller_id, listing_id, now=now)
            undo.append(lambda: self._listings.restore_listing(snapshot))
            return (
                [(EventKind.LISTING_DEACTIVATED, caller_id, {
                    "listing_id": listing_id, "creator_id": caller_id,
                })],
                {"listing_id": listing_id, "status": listing.status.value, "active": listing.active},
            )

        return self._execute("deactivate_listing", caller_id, _apply)

    def get_listing(self, listing_id: int) -> Optional[Listing]:
        """Retrieve a listing copy by ID."""
        return self._listings.get_listing(listing_id)

    def is_expired(self, listing_id: int) -> bool:
        """Raises NotFoundError for unknown listing ids."""
        return self._listings.is_expired(listing_id, now=self._clock())

    def get_active_listings(self) -> list[Listing]:
        return self._listings.get_active_listings(now=self._clock())

    def get_listings_by_status(self, status: ListingStatus) -> list[Listing]:
        return self._listings.get_listings_by_status(ListingStatus(status))

    def get_user_listings(self, member_id: str) -> list[Listing]:
        return self._listings.get_user_listings(member_id)

    def get_listings_by_expertise(self, expertise: str) -> list[Listing]:
        return self._listings.get_listings_by_expertise(expertise, now=self._clock())

    # ------------------------------------------------------------------
    # Category administration
    # ------------------------------------------------------------------

    def add_category(self, caller_id: str, name: str) -> ServiceResult:
        """Admin-only. Emits CATEGORY_ADDED."""
        caller_id = caller_id.strip()
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            self._require_admin(caller_id)
            category = self._categories.add(name)
            undo.append(lambda: self._categories.remove(category))
            return (
                [(EventKind.CATEGORY_ADDED, caller_id, {"category": category})],
                {"category": category},
            )

        return self._execute("add_category", caller_id, _apply)

    def remove_category(self, caller_id: str, name: str) -> ServiceResult:
        """Admin-only. Emits CATEGORY_REMOVED. Existing listings keep their category."""
        caller_id = caller_id.strip()
        def _apply(undo: Undo, now: datetime) -> tuple[list[PendingEvent], dict[str, Any]]:
            self._require_admin(caller_id)
            category = self._categories.remove(name)
            undo.append(lambda: self._categories.add(category))
            return (
                [(EventKind.CATEGORY_REMOVED, caller_id, {"category": category})],
                {"category": category},
            )

        return self._execute("remove_category", caller_id, _apply)

    def categories(self) -> list[str]:
        return self._categories.all()

    # ------------------------------------------------------------------
    # Notifications and status
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Register a fire-and-forget callback for every recorded event."""
        self._listeners.append(listener)

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    def status(self) -> dict[str, Any]:
        """Summary of directory state."""
        counts: dict[str, int] = {s.value: 0 for s in ListingStatus}
        for listing in self._listings.all_listings():
            counts[listing.status.value] += 1
        return {
            "policy_version": self._resolver.version,
            "profiles": {
                "total": self._directory.count,
                "active": self._directory.active_count,
                "expertise_tags": len(self._directory.expertise_tags()),
            },
            "listings": {
                "total": self._listings.count,
                "live": len(self._listings.get_active_listings(now=self._clock())),
                "by_status": counts,
            },
            "categories": self._categories.all(),
            "events": self._event_log.count,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        if self._in_mutation:
            raise ReentrancyError("Re-entrant call rejected: another operation is in progress")
        self._in_mutation = True
        try:
            yield
        finally:
            self._in_mutation = False

    def _execute(
        self,
        operation: str,
        caller_id: str,
        apply: Callable[[Undo, datetime], tuple[list[PendingEvent], dict[str, Any]]],
    ) -> ServiceResult:
        """Run one mutating operation inside the guard.

        apply() mutates the stores and appends an undo step for every
        change it makes. If apply() or event recording fails, the undo
        steps run in reverse order and the call is rejected.
        """
        undo: Undo = []
        try:
            with self._mutation():
                now = self._clock()
                pending, data = apply(undo, now)
                records = self._record_events(pending, now)
                # Events are recorded: do NOT roll back past this point
                warning = self._safe_persist_post_audit()
                if warning:
                    data["warning"] = warning
                self._notify(records)
        except DirectoryError as e:
            for step in reversed(undo):
                step()
            logger.warning(
                "operation_rejected",
                operation=operation,
                caller_id=caller_id,
                error_kind=e.kind.value,
                reason=str(e),
            )
            return ServiceResult(success=False, errors=[str(e)], error_kind=e.kind)

        logger.info("operation_applied", operation=operation, caller_id=caller_id, **data)
        return ServiceResult(success=True, data=data)

    def _push_stats(
        self,
        member_id: Optional[str],
        undo: Undo,
        now: datetime,
        completed: int = 0,
        created: int = 0,
        responses: int = 0,
    ) -> None:
        """Read a member's counters, add the deltas, write all three back."""
        if member_id is None:
            raise InvalidStateError("Cannot credit counters: listing has no responder")
        before = self._directory.get_profile(member_id)
        stats = before.stats
        self._directory.update_profile_stats(
            member_id,
            stats.listings_completed + completed,
            stats.total_listings_created + created,
            stats.total_responses + responses,
            writer=self,
            now=now,
        )
        undo.append(lambda: self._directory.restore_stats(
            member_id, stats, before.last_active, writer=self,
        ))

    def _require_admin(self, caller_id: str) -> None:
        if caller_id not in self._admins:
            raise UnauthorizedError(f"Admin rights required: {caller_id}")

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_events(
        self, pending: list[PendingEvent], now: datetime,
    ) -> list[EventRecord]:
        """Append every event of one operation as a single batch.

        Either all records are appended or none are; on failure the event
        id counter is put back so the next operation reuses the ids.
        """
        counter_before = self._event_counter
        records = [
            EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
                timestamp_utc=now,
            )
            for kind, actor_id, payload in pending
        ]
        try:
            self._event_log.append_many(records)
        except (ValueError, OSError) as e:
            self._event_counter = counter_before
            raise PersistenceError(f"Event log failure: {e}") from e
        return records

    def _notify(self, records: list[EventRecord]) -> None:
        for record in records:
            for listener in list(self._listeners):
                try:
                    listener(record)
                except Exception:
                    logger.exception(
                        "listener_failed",
                        event_id=record.event_id,
                        event_kind=record.event_kind.value,
                    )

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired).

        NOTE: This method can raise OSError.
        """
        if self._state_store is None:
            return
        self._state_store.save_all(
            self._directory,
            self._listings.all_listings(),
            self._listings.count,
            self._categories,
        )

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after events have been recorded.

        MUST NOT roll back in-memory state: the notification is already
        durable. If the write fails, in-memory state stays correct but the
        StateStore is stale; the degraded flag is set and a warning
        returned.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("persistence_degraded", error=str(e))
            return f"Persistence degraded: {e}; state recorded in event log but StateStore is stale"
