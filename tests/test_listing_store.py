"""Tests for ListingStore — lifecycle guards, lazy expiry, and queries."""

import pytest
from datetime import datetime, timedelta, timezone

from guildhall.directory.profile_directory import ProfileDirectory
from guildhall.errors import (
    AlreadyExistsError,
    ExpiredError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    SelfReferenceError,
    UnauthorizedError,
)
from guildhall.market.categories import CategoryRegistry
from guildhall.market.listing_store import ListingStore
from guildhall.models.listing import ExpertiseType, ListingStatus

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
DURATION = timedelta(days=15)


@pytest.fixture
def directory() -> ProfileDirectory:
    d = ProfileDirectory()
    for member in ("alice", "bob", "carol"):
        d.create_profile(member, f"{member}@example.org", False, "", ["Biohacking"], "", "", now=T0)
    return d


@pytest.fixture
def store(directory) -> ListingStore:
    categories = CategoryRegistry(["Biohacking", "Peptides"])
    return ListingStore(directory, categories, listing_duration=DURATION)


def _post(store: ListingStore, creator: str = "alice", expertise: str = "Biohacking", now=T0, **overrides):
    fields = dict(
        title="Need a protocol review",
        description="Looking for a second pair of eyes",
        category="Biohacking",
        is_project=False,
        expertise_type=ExpertiseType.SEEKING,
        expertise=expertise,
        contact_method="dm",
    )
    fields.update(overrides)
    return store.create_listing(creator, now=now, **fields)


class TestCreateListing:
    def test_ids_are_sequential_from_one(self, store) -> None:
        first = _post(store)
        second = _post(store, creator="bob")
        assert (first.listing_id, second.listing_id) == (1, 2)
        assert store.count == 2
        assert store.get_listing(0) is None

    def test_new_listing_defaults(self, store) -> None:
        listing = _post(store)
        assert listing.status == ListingStatus.OPEN
        assert listing.active
        assert listing.responder_id is None
        assert listing.created_utc == T0

    def test_requires_profile(self, store) -> None:
        with pytest.raises(NotFoundError):
            _post(store, creator="nobody")
        assert store.count == 0

    def test_requires_active_profile(self, store, directory) -> None:
        directory.deactivate_profile("alice", now=T0)
        with pytest.raises(UnauthorizedError):
            _post(store)

    def test_empty_title_or_description_rejected(self, store) -> None:
        with pytest.raises(InvalidInputError):
            _post(store, title="")
        with pytest.raises(InvalidInputError):
            _post(store, description="")
        assert store.count == 0

    def test_unknown_category_rejected(self, store) -> None:
        with pytest.raises(InvalidInputError):
            _post(store, category="Astrology")
        assert store.count == 0

    def test_unknown_expertise_type_rejected(self, store) -> None:
        with pytest.raises(InvalidInputError):
            _post(store, expertise_type="lending")
        assert store.count == 0

    def test_user_index(self, store) -> None:
        _post(store)
        _post(store, creator="bob")
        _post(store)
        assert [l.listing_id for l in store.get_user_listings("alice")] == [1, 3]
        assert [l.listing_id for l in store.get_user_listings("bob")] == [2]
        assert store.get_user_listings("carol") == []

    def test_padded_creator_id_is_stored_stripped(self, store) -> None:
        listing = _post(store, creator=" alice ")
        assert listing.creator_id == "alice"
        assert [l.listing_id for l in store.get_user_listings("alice")] == [1]
        assert [l.listing_id for l in store.get_user_listings(" alice")] == [1]


class TestUpdateListing:
    def _update(self, store, caller="alice", listing_id=1, now=T0, **overrides):
        fields = dict(
            title="Updated",
            description="Updated description",
            category="Peptides",
            is_project=True,
            expertise_type=ExpertiseType.OFFERING,
            expertise="Peptides",
            contact_method="email",
        )
        fields.update(overrides)
        return store.update_listing(caller, listing_id, now=now, **fields)

    def test_update_replaces_descriptive_fields_only(self, store) -> None:
        _post(store)
        listing = self._update(store, now=T0 + timedelta(days=1))
        assert listing.title == "Updated"
        assert listing.category == "Peptides"
        assert listing.expertise_type == ExpertiseType.OFFERING
        assert listing.creator_id == "alice"
        assert listing.status == ListingStatus.OPEN
        assert listing.responder_id is None
        assert listing.updated_utc == T0 + timedelta(days=1)

    def test_missing_listing(self, store) -> None:
        with pytest.raises(NotFoundError):
            self._update(store, listing_id=99)

    def test_non_creator_rejected(self, store) -> None:
        _post(store)
        with pytest.raises(UnauthorizedError):
            self._update(store, caller="bob")

    def test_not_open_rejected(self, store) -> None:
        _post(store)
        store.respond_to_listing("bob", 1, now=T0)
        with pytest.raises(InvalidStateError):
            self._update(store)

    def test_inactive_rejected(self, store) -> None:
        _post(store)
        store.deactivate_listing("alice", 1, now=T0)
        with pytest.raises(InvalidStateError):
            self._update(store)

    def test_expired_rejected(self, store) -> None:
        _post(store)
        with pytest.raises(ExpiredError):
            self._update(store, now=T0 + DURATION)

    def test_unknown_category_leaves_listing_untouched(self, store) -> None:
        _post(store)
        with pytest.raises(InvalidInputError):
            self._update(store, category="Astrology")
        assert store.get_listing(1).title == "Need a protocol review"


class TestRespond:
    def test_respond_moves_to_in_progress(self, store) -> None:
        _post(store)
        listing = store.respond_to_listing("bob", 1, now=T0 + timedelta(days=1))
        assert listing.status == ListingStatus.IN_PROGRESS
        assert listing.responder_id == "bob"
        assert listing.responded_utc == T0 + timedelta(days=1)

    def test_self_response_forbidden(self, store) -> None:
        _post(store)
        with pytest.raises(SelfReferenceError):
            store.respond_to_listing("alice", 1, now=T0)
        assert store.get_listing(1).status == ListingStatus.OPEN

    def test_padded_self_response_forbidden(self, store) -> None:
        _post(store)
        with pytest.raises(SelfReferenceError):
            store.respond_to_listing("alice ", 1, now=T0)
        assert store.get_listing(1).responder_id is None

    def test_padded_responder_is_stored_stripped(self, store) -> None:
        _post(store)
        assert store.respond_to_listing(" bob", 1, now=T0).responder_id == "bob"

    def test_responder_never_overwritten(self, store) -> None:
        _post(store)
        store.respond_to_listing("bob", 1, now=T0)
        with pytest.raises(InvalidStateError):
            store.respond_to_listing("carol", 1, now=T0)
        assert store.get_listing(1).responder_id == "bob"

    def test_expired_listing_cannot_be_taken(self, store) -> None:
        _post(store)
        with pytest.raises(ExpiredError):
            store.respond_to_listing("bob", 1, now=T0 + timedelta(days=16))
        listing = store.get_listing(1)
        assert listing.status == ListingStatus.OPEN
        assert listing.responder_id is None

    def test_responder_needs_profile(self, store, directory) -> None:
        _post(store)
        with pytest.raises(NotFoundError):
            store.respond_to_listing("nobody", 1, now=T0)
        directory.deactivate_profile("carol", now=T0)
        with pytest.raises(UnauthorizedError):
            store.respond_to_listing("carol", 1, now=T0)

    def test_inactive_listing_rejected(self, store) -> None:
        _post(store)
        store.deactivate_listing("alice", 1, now=T0)
        with pytest.raises(InvalidStateError):
            store.respond_to_listing("bob", 1, now=T0)

    def test_missing_listing(self, store) -> None:
        with pytest.raises(NotFoundError):
            store.respond_to_listing("bob", 1, now=T0)


class TestResolve:
    def test_resolve_in_progress(self, store) -> None:
        _post(store)
        store.respond_to_listing("bob", 1, now=T0)
        listing = store.mark_resolved("alice", 1, now=T0 + timedelta(days=2))
        assert listing.status == ListingStatus.RESOLVED
        assert listing.resolved_utc == T0 + timedelta(days=2)

    def test_resolve_open_rejected(self, store) -> None:
        _post(store)
        with pytest.raises(InvalidStateError):
            store.mark_resolved("alice", 1, now=T0)

    def test_only_creator_resolves(self, store) -> None:
        _post(store)
        store.respond_to_listing("bob", 1, now=T0)
        with pytest.raises(UnauthorizedError):
            store.mark_resolved("bob", 1, now=T0)

    def test_resolution_ignores_expiry(self, store) -> None:
        _post(store)
        store.respond_to_listing("bob", 1, now=T0 + timedelta(days=14))
        late = T0 + timedelta(days=40)
        assert store.is_expired(1, now=late)
        listing = store.mark_resolved("alice", 1, now=late)
        assert listing.status == ListingStatus.RESOLVED

    def test_resolved_is_terminal(self, store) -> None:
        _post(store)
        store.respond_to_listing("bob", 1, now=T0)
        store.mark_resolved("alice", 1, now=T0)
        with pytest.raises(InvalidStateError):
            store.mark_resolved("alice", 1, now=T0)
        with pytest.raises(InvalidStateError, match="cannot be withdrawn"):
            store.deactivate_listing("alice", 1, now=T0)
        assert store.get_listing(1).status == ListingStatus.RESOLVED


class TestDeactivate:
    def test_deactivate_open(self, store) -> None:
        _post(store)
        listing = store.deactivate_listing("alice", 1, now=T0)
        assert listing.status == ListingStatus.EXPIRED
        assert not listing.active

    def test_deactivate_in_progress(self, store) -> None:
        _post(store)
        store.respond_to_listing("bob", 1, now=T0)
        listing = store.deactivate_listing("alice", 1, now=T0)
        assert listing.status == ListingStatus.EXPIRED
        assert listing.responder_id == "bob"

    def test_deactivate_time_expired_listing(self, store) -> None:
        _post(store)
        listing = store.deactivate_listing("alice", 1, now=T0 + timedelta(days=30))
        assert listing.status == ListingStatus.EXPIRED

    def test_twice_rejected(self, store) -> None:
        _post(store)
        store.deactivate_listing("alice", 1, now=T0)
        with pytest.raises(InvalidStateError):
            store.deactivate_listing("alice", 1, now=T0)

    def test_non_creator_rejected(self, store) -> None:
        _post(store)
        with pytest.raises(UnauthorizedError):
            store.deactivate_listing("bob", 1, now=T0)
        assert store.get_listing(1).active


class TestExpiry:
    def test_boundary_is_inclusive(self, store) -> None:
        _post(store)
        assert not store.is_expired(1, now=T0 + DURATION - timedelta(seconds=1))
        assert store.is_expired(1, now=T0 + DURATION)

    def test_expiry_is_monotonic(self, store) -> None:
        _post(store)
        observed = [
            store.is_expired(1, now=T0 + timedelta(hours=h))
            for h in range(0, 24 * 40, 7)
        ]
        first_true = observed.index(True)
        assert all(observed[first_true:])
        assert not any(observed[:first_true])

    def test_expiry_is_not_stored(self, store) -> None:
        _post(store)
        assert store.is_expired(1, now=T0 + timedelta(days=20))
        assert store.get_listing(1).status == ListingStatus.OPEN

    def test_unknown_listing(self, store) -> None:
        with pytest.raises(NotFoundError):
            store.is_expired(5, now=T0)


class TestQueries:
    def test_active_listings_filter(self, store) -> None:
        _post(store)                                   # 1 open
        _post(store, creator="bob")                    # 2 taken
        store.respond_to_listing("carol", 2, now=T0)
        _post(store)                                   # 3 withdrawn
        store.deactivate_listing("alice", 3, now=T0)
        _post(store, now=T0 - timedelta(days=20))      # 4 lapsed
        ids = [l.listing_id for l in store.get_active_listings(now=T0 + timedelta(days=1))]
        assert ids == [1]

    def test_by_status_uses_stored_status(self, store) -> None:
        _post(store, now=T0 - timedelta(days=20))
        _post(store)
        store.deactivate_listing("alice", 2, now=T0)
        assert [l.listing_id for l in store.get_listings_by_status(ListingStatus.OPEN)] == [1]
        assert [l.listing_id for l in store.get_listings_by_status(ListingStatus.EXPIRED)] == [2]
        assert store.get_listings_by_status(ListingStatus.RESOLVED) == []

    def test_by_expertise_is_exact_and_live(self, store) -> None:
        _post(store, expertise="Peptides")                          # 1 match
        _post(store, expertise="peptides")                          # 2 case differs
        _post(store, expertise="Peptides ")                         # 3 trailing space
        _post(store, creator="bob", expertise="Peptides")           # 4 match, taken
        store.respond_to_listing("carol", 4, now=T0)
        _post(store, expertise="Peptides")                          # 5 withdrawn
        store.deactivate_listing("alice", 5, now=T0)
        _post(store, expertise="Peptides", now=T0 - timedelta(days=16))  # 6 lapsed
        ids = [l.listing_id for l in store.get_listings_by_expertise("Peptides", now=T0)]
        assert ids == [1, 4]

    def test_query_results_are_detached(self, store) -> None:
        _post(store)
        store.get_active_listings(now=T0)[0].status = ListingStatus.RESOLVED
        assert store.get_listing(1).status == ListingStatus.OPEN


class TestRollbackHelpers:
    def test_discard_latest_listing(self, store) -> None:
        _post(store)
        _post(store)
        store.discard_listing(2)
        assert store.count == 1
        assert [l.listing_id for l in store.get_user_listings("alice")] == [1]
        assert _post(store).listing_id == 2

    def test_discard_only_latest(self, store) -> None:
        _post(store)
        _post(store)
        with pytest.raises(InvalidStateError):
            store.discard_listing(1)

    def test_restore_listing(self, store) -> None:
        _post(store)
        snapshot = store.get_listing(1)
        store.respond_to_listing("bob", 1, now=T0)
        store.restore_listing(snapshot)
        restored = store.get_listing(1)
        assert restored.status == ListingStatus.OPEN
        assert restored.responder_id is None


class TestCategoryRegistry:
    def test_add_remove(self) -> None:
        registry = CategoryRegistry(["A"])
        registry.add(" B ")
        assert registry.all() == ["A", "B"]
        assert registry.exists("B")
        registry.remove("A")
        assert not registry.exists("A")
        assert len(registry) == 1

    def test_duplicate_and_missing(self) -> None:
        registry = CategoryRegistry(["A"])
        with pytest.raises(AlreadyExistsError):
            registry.add("A")
        with pytest.raises(NotFoundError):
            registry.remove("Z")
        with pytest.raises(InvalidInputError):
            registry.add("   ")
