"""Tests for the append-only event log — proves replay protection and integrity."""

import json
from pathlib import Path

import pytest

from stakegov.persistence.event_log import EventKind, EventLog, EventRecord


T0 = 1_700_000_000


def _event(event_id: str = "evt-1", kind: EventKind = EventKind.VOTE_CAST) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=kind,
        contract="poll-1",
        sender="alice",
        payload={"choice": 0, "voting_power": 40},
        block_time=T0,
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _event().event_hash == _event().event_hash
        assert _event().event_hash.startswith("sha256:")

    def test_hash_covers_payload(self) -> None:
        other = EventRecord.create("evt-1", EventKind.VOTE_CAST, "poll-1", "alice", {"choice": 1}, T0)
        assert other.event_hash != _event().event_hash


class TestEventLog:
    def test_duplicate_rejected(self) -> None:
        log = EventLog()
        log.append(_event())
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(_event())

    def test_filters(self) -> None:
        log = EventLog()
        log.append(_event("e1", EventKind.VOTE_CAST))
        log.append(_event("e2", EventKind.POLL_FINALIZED))
        assert [e.event_id for e in log.events(EventKind.POLL_FINALIZED)] == ["e2"]
        assert len(log.events(contract="poll-1")) == 2
        assert log.events(contract="other") == []
        assert log.last_event.event_id == "e2"
        assert len(log.event_hashes(EventKind.VOTE_CAST)) == 1

    def test_persist_and_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event("e1"))
        log.append(_event("e2"))
        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events()[0] == log.events()[0]

    def test_tampered_file_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event("e1"))
        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["voting_power"] = 4_000
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Integrity"):
            EventLog(storage_path=path)
