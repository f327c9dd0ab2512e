"""Persistence — append-only event log and engine state snapshots."""

from ballot.persistence.event_log import EventKind, EventLog, EventRecord
from ballot.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
