"""Tests for the event log and state store — durability and tamper evidence."""

import json
import pytest
from datetime import datetime, timezone
from pathlib import Path

from guildhall.directory.profile_directory import ProfileDirectory
from guildhall.market.categories import CategoryRegistry
from guildhall.market.listing_store import ListingStore
from guildhall.models.listing import ExpertiseType, ListingStatus
from guildhall.persistence.event_log import EventKind, EventLog, EventRecord
from guildhall.persistence.state_store import StateStore

T0 = datetime(2026, 2, 14, 8, 15, 30, 250000, tzinfo=timezone.utc)


def _record(event_id: str, kind: EventKind = EventKind.LISTING_CREATED) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=kind,
        actor_id="alice",
        payload={"listing_id": 1, "creator_id": "alice"},
        timestamp_utc=T0,
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _record("EVT-1").event_hash == _record("EVT-1").event_hash
        assert _record("EVT-1").event_hash.startswith("sha256:")

    def test_hash_covers_identity(self) -> None:
        assert _record("EVT-1").event_hash != _record("EVT-2").event_hash


class TestEventLog:
    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_record("EVT-1"))
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(_record("EVT-1"))
        assert log.count == 1

    def test_batch_with_duplicate_is_rejected_whole(self) -> None:
        log = EventLog()
        log.append(_record("EVT-1"))
        with pytest.raises(ValueError, match="Duplicate"):
            log.append_many([_record("EVT-2"), _record("EVT-2")])
        with pytest.raises(ValueError, match="Duplicate"):
            log.append_many([_record("EVT-3"), _record("EVT-1")])
        assert [e.event_id for e in log.events()] == ["EVT-1"]
        log.append_many([_record("EVT-2"), _record("EVT-3")])
        assert log.count == 3

    def test_failed_batch_write_leaves_log_unchanged(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        path.mkdir()
        with pytest.raises(OSError):
            log.append_many([_record("EVT-1"), _record("EVT-2")])
        assert log.count == 0

    def test_batch_is_written_together(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append_many([_record("EVT-1"), _record("EVT-2")])
        assert len(path.read_text(encoding="utf-8").splitlines()) == 2
        assert EventLog(storage_path=path).count == 2

    def test_filter_by_kind(self) -> None:
        log = EventLog()
        log.append(_record("EVT-1"))
        log.append(_record("EVT-2", EventKind.LISTING_RESOLVED))
        assert [e.event_id for e in log.events(EventKind.LISTING_RESOLVED)] == ["EVT-2"]
        assert log.last_event.event_id == "EVT-2"

    def test_events_since(self) -> None:
        log = EventLog()
        log.append(_record("EVT-1"))
        assert log.events_since("2026-02-14T00:00:00Z") != []
        assert log.events_since("2026-02-15T00:00:00Z") == []

    def test_jsonl_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_record("EVT-1"))
        log.append(_record("EVT-2", EventKind.LISTING_RESPONDED))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events()[1].event_kind == EventKind.LISTING_RESPONDED
        assert reloaded.events()[0].event_hash == log.events()[0].event_hash

    def test_tampered_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_record("EVT-1"))
        data = json.loads(path.read_text(encoding="utf-8"))
        data["payload"]["creator_id"] = "mallory"
        path.write_text(json.dumps(data) + "\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_replayed_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_record("EVT-1"))
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)


class TestStateStore:
    def test_empty_store(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "state.json")
        assert not store.has_state
        assert store.load_profiles() == []
        assert store.load_listings() == ([], 0)
        assert store.load_categories() is None

    def test_round_trip(self, tmp_path: Path) -> None:
        directory = ProfileDirectory()
        writer = object()
        directory.bind_stats_writer(writer)
        categories = CategoryRegistry(["Research", "Peptides"])
        listings = ListingStore(directory, categories)

        directory.create_profile(
            "alice", "alice@example.org", True, "Lisbon in June",
            ["Peptides", "Research"], "PhD", "hello", now=T0,
        )
        directory.create_profile("bob", "bob@example.org", False, "", [], "", "", now=T0)
        directory.update_profile_stats("alice", 2, 3, 4, writer=writer, now=T0)
        listings.create_listing(
            "alice", "Assay help", "Need HPLC time", "Peptides", True,
            ExpertiseType.OFFERING, "Peptides", "email", now=T0,
        )
        listings.respond_to_listing("bob", 1, now=T0)
        directory.deactivate_profile("bob", now=T0)

        path = tmp_path / "state.json"
        StateStore(path).save_all(directory, listings.all_listings(), listings.count, categories)

        store = StateStore(path)
        assert store.has_state

        restored = ProfileDirectory()
        restored.load(store.load_profiles())
        alice = restored.get_profile("alice")
        assert alice.on_site
        assert alice.travel_details == "Lisbon in June"
        assert alice.last_status_update == T0
        assert restored.get_user_stats("alice").total_responses == 4
        assert not restored.has_active_profile("bob")
        assert restored.roster() == ["alice", "bob"]
        assert restored.expertise_members("Research") == ["alice"]

        loaded, counter = store.load_listings()
        assert counter == 1
        listing = loaded[0]
        assert listing.status == ListingStatus.IN_PROGRESS
        assert listing.expertise_type == ExpertiseType.OFFERING
        assert listing.responder_id == "bob"
        assert listing.created_utc == T0
        assert listing.resolved_utc is None

        assert store.load_categories() == ["Research", "Peptides"]

    def test_write_is_atomic_replace(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "state.json"
        StateStore(path).save_all(ProfileDirectory(), [], 0, CategoryRegistry())
        assert path.exists()
        assert not path.with_suffix(".json.tmp").exists()
