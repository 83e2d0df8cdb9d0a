"""Persistence — the append-only contract event log."""

from stakegov.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]
