"""Persistence layer — event log and state storage."""

from guildhall.persistence.event_log import EventLog, EventRecord, EventKind
from guildhall.persistence.state_store import StateStore

__all__ = ["EventLog", "EventRecord", "EventKind", "StateStore"]
