"""Persistence — append-only event log and JSON state store."""

from stakevault.persistence.event_log import EventKind, EventLog, EventRecord
from stakevault.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
