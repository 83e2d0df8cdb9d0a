"""Append-only event log — the audit record of every contract state change.

Each event a contract handler emits is appended here by the host once the
enclosing transaction commits. Events from a rolled-back transaction never
reach the log. Records are immutable once written. The log serves as:
1. The audit trail for stake, allocation and voting activity.
2. The source for offline invariant checks (tools/check_invariants.py).

Events can be persisted as JSONL and reloaded with integrity verification.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of contract events."""
    # Staking pool
    DEPOSIT_REQUESTED = "deposit_requested"
    REDEEM_REQUESTED = "redeem_requested"
    ALLOCATION_APPLIED = "allocation_applied"
    POSITION_SETTLED = "position_settled"
    EMERGENCY_REDEEMED = "emergency_redeemed"
    SUBSCRIBERS_ADDED = "subscribers_added"
    SUBSCRIBERS_REMOVED = "subscribers_removed"
    CONTRACT_STOPPED = "contract_stopped"
    CONTRACT_RESUMED = "contract_resumed"
    ADMIN_CHANGED = "admin_changed"
    # Poll factory
    POLL_CREATED = "poll_created"
    POLL_REGISTERED = "poll_registered"
    POLLS_PRUNED = "polls_pruned"
    VOTING_POWER_ROUTED = "voting_power_routed"
    FACTORY_CONFIG_UPDATED = "factory_config_updated"
    # Poll
    POLL_OPENED = "poll_opened"
    VOTE_CAST = "vote_cast"
    VOTING_POWER_SYNCED = "voting_power_synced"
    POLL_FINALIZED = "poll_finalized"
    # Reference token and master
    TOKENS_TRANSFERRED = "tokens_transferred"
    TOKENS_MINTED = "tokens_minted"
    ALLOCATION_COMPUTED = "allocation_computed"
    WEIGHTS_SET = "weights_set"


def _canonical_hash(fields: dict[str, Any]) -> str:
    canonical = json.dumps(fields, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event in the log.

    The event_hash is computed at creation time over the canonical JSON of
    every other field.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    contract: str
    sender: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        contract: str,
        sender: str,
        payload: dict[str, Any],
        block_time: int,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = datetime.fromtimestamp(block_time, tz=timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            contract=contract,
            sender=sender,
            payload=payload,
            event_hash=_canonical_hash({
                "event_id": event_id,
                "event_kind": event_kind.value,
                "timestamp_utc": ts_str,
                "contract": contract,
                "sender": sender,
                "payload": payload,
            }),
        )


class EventLog:
    """Append-only event log with optional file persistence.

    Events can only be appended, never modified or deleted.
    The log can be persisted to a JSONL file (one JSON object per line)
    and loaded back for recovery.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")

        self._events.append(event)
        self._event_ids.add(event.event_id)

        if self._storage_path:
            self._append_to_file(event)

    def events(
        self,
        kind: Optional[EventKind] = None,
        contract: Optional[str] = None,
    ) -> list[EventRecord]:
        """Return events, optionally filtered by kind and emitting contract."""
        result = list(self._events)
        if kind is not None:
            result = [e for e in result if e.event_kind == kind]
        if contract is not None:
            result = [e for e in result if e.contract == contract]
        return result

    def event_hashes(self, kind: Optional[EventKind] = None) -> list[str]:
        return [e.event_hash for e in self.events(kind)]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_to_file(self, event: EventRecord) -> None:
        """Append a single event to the JSONL file."""
        record = {
            "event_id": event.event_id,
            "event_kind": event.event_kind.value,
            "timestamp_utc": event.timestamp_utc,
            "contract": event.contract,
            "sender": event.sender,
            "payload": event.payload,
            "event_hash": event.event_hash,
        }
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate event IDs.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                event_id = data["event_id"]
                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash({
                    "event_id": data["event_id"],
                    "event_kind": data["event_kind"],
                    "timestamp_utc": data["timestamp_utc"],
                    "contract": data["contract"],
                    "sender": data["sender"],
                    "payload": data["payload"],
                })
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                event = EventRecord(
                    event_id=data["event_id"],
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    contract=data["contract"],
                    sender=data["sender"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                )
                self._events.append(event)
                self._event_ids.add(event.event_id)
