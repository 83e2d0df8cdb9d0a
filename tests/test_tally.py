"""Tests for the tally engine — proves revote, resync and quorum arithmetic."""

import pytest

from stakegov.errors import AlreadyEnded, NotFinalizedOrInvalid, NotYetEnded, UnknownChoice
from stakegov.governance.tally import TallyEngine
from stakegov.models.poll import PollMetadata, PollState, PollStatus, StoredPollConfig, Vote


END = 1_700_001_000


def _state(choices: tuple[str, ...] = ("A", "B"), quorum: int = 34, min_threshold: int = 0) -> PollState:
    return PollState(
        owner="factory",
        staking_pool="staking",
        metadata=PollMetadata(title="Fee", description="Fee change", author="alice"),
        config=StoredPollConfig(
            end_timestamp=END,
            quorum=quorum,
            min_threshold=min_threshold,
            choices=list(choices),
        ),
        tally=[0] * len(choices),
    )


def _consistent(state: PollState) -> bool:
    return sum(state.tally) == sum(v.voting_power for v in state.votes.values())


class TestVoting:
    def test_vote_revote_resync(self) -> None:
        state = _state()
        engine = TallyEngine(state)
        engine.cast_vote("alice", 0, 40)
        assert engine.tally == [40, 0]
        engine.cast_vote("alice", 1, 40)
        assert engine.tally == [0, 40]
        engine.sync_voting_power("alice", 70)
        assert engine.tally == [0, 70]
        assert state.votes["alice"] == Vote(choice=1, voting_power=70)
        assert _consistent(state)

    def test_unknown_choice(self) -> None:
        engine = TallyEngine(_state())
        with pytest.raises(UnknownChoice) as exc:
            engine.cast_vote("alice", 2, 10)
        assert exc.value.details == {"choice": 2, "choice_count": 2}
        with pytest.raises(UnknownChoice):
            engine.cast_vote("alice", -1, 10)

    def test_sync_without_vote_is_noop(self) -> None:
        state = _state()
        engine = TallyEngine(state)
        assert engine.sync_voting_power("bob", 99) is False
        assert engine.tally == [0, 0]
        assert "bob" not in state.votes

    def test_many_voters_stay_consistent(self) -> None:
        state = _state(choices=("A", "B", "C"))
        engine = TallyEngine(state)
        engine.cast_vote("a", 0, 5)
        engine.cast_vote("b", 2, 8)
        engine.cast_vote("c", 1, 3)
        engine.sync_voting_power("b", 1)
        engine.cast_vote("a", 2, 6)
        engine.sync_voting_power("c", 0)
        assert engine.tally == [0, 0, 7]
        assert _consistent(state)

    def test_votes_accepted_after_end_until_finalized(self) -> None:
        engine = TallyEngine(_state())
        engine.cast_vote("alice", 0, 10)
        engine.finalize(eligible_supply=10, now=END + 50)
        with pytest.raises(AlreadyEnded):
            engine.cast_vote("bob", 0, 10)
        with pytest.raises(AlreadyEnded):
            engine.sync_voting_power("alice", 1)


class TestFinalize:
    def test_before_end(self) -> None:
        engine = TallyEngine(_state())
        with pytest.raises(NotYetEnded):
            engine.finalize(eligible_supply=100, now=END - 1)

    def test_at_end_once(self) -> None:
        state = _state()
        engine = TallyEngine(state)
        engine.cast_vote("alice", 1, 40)
        answer = engine.finalize(eligible_supply=100, now=END)
        assert answer.valid is True
        assert answer.tally == [0, 40]
        assert answer.choices == ["A", "B"]
        assert state.config.status == PollStatus.ENDED_VALID
        with pytest.raises(AlreadyEnded):
            engine.finalize(eligible_supply=100, now=END + 1)

    def test_quorum_not_reached(self) -> None:
        state = _state(quorum=34)
        engine = TallyEngine(state)
        engine.cast_vote("alice", 0, 34)
        assert engine.finalize(eligible_supply=100, now=END).valid is False
        assert state.config.status == PollStatus.ENDED_INVALID

    def test_zero_supply_is_invalid(self) -> None:
        engine = TallyEngine(_state(quorum=0))
        assert engine.finalize(eligible_supply=0, now=END).valid is False

    def test_min_threshold_compares_raw_tally(self) -> None:
        engine = TallyEngine(_state(quorum=0, min_threshold=50))
        engine.cast_vote("alice", 0, 50)
        assert engine.finalize(eligible_supply=60, now=END).valid is False

    def test_participation_floor(self) -> None:
        assert TallyEngine.participation(1, 3) == 33
        assert TallyEngine.participation(5, 0) == 0


class TestFinalTally:
    def test_requires_finalize(self) -> None:
        engine = TallyEngine(_state())
        with pytest.raises(NotFinalizedOrInvalid):
            engine.final_tally()

    def test_requires_valid(self) -> None:
        engine = TallyEngine(_state())
        engine.finalize(eligible_supply=100, now=END)
        with pytest.raises(NotFinalizedOrInvalid):
            engine.final_tally()

    def test_valid_result(self) -> None:
        engine = TallyEngine(_state())
        engine.cast_vote("alice", 0, 90)
        engine.finalize(eligible_supply=100, now=END)
        assert engine.final_tally().tally == [90, 0]
