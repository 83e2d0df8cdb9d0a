"""Tests for the poll contract — proves stake-weighted votes and live resync."""

import pytest

from stakegov.config import FactoryConfig
from stakegov.errors import (
    AlreadyEnded,
    InvalidPollConfig,
    NotFinalizedOrInvalid,
    NotYetEnded,
    Unauthorized,
    UnknownChoice,
    UnsupportedMessage,
)
from stakegov.governance.poll import Poll
from stakegov.governance.registry import PollFactory
from stakegov.host.chain import Host
from stakegov.models.execution import ExecutionContext, Response
from stakegov.models.poll import (
    CastVote,
    Choices,
    Finalize,
    HasVoted,
    MetadataQuery,
    NewPoll,
    PollConfig,
    PollInit,
    PollMetadata,
    PollStatusQuery,
    TallyQuery,
    UpdateVotingPower,
    Vote,
    VoteQuery,
)
from stakegov.models.staking import Balance, TotalLocked


T0 = 1_700_000_000
DURATION = 1_000
META = PollMetadata(title="Fee change", description="Raise the fee", author="alice")


class _StakeOracle:
    """Staking pool double: answers Balance (keyed "key-<address>") and TotalLocked."""

    def __init__(self, powers: dict[str, int], supply: int) -> None:
        self.state = {"powers": dict(powers), "supply": supply}

    def handle(self, ctx: ExecutionContext, msg: object) -> Response:
        raise UnsupportedMessage("oracle handles no messages")

    def query(self, ctx: ExecutionContext, msg: object) -> int:
        if isinstance(msg, Balance):
            if msg.credential != f"key-{msg.address}":
                raise Unauthorized(msg.address, "query", "wrong viewing key")
            return self.state["powers"].get(msg.address, 0)
        if isinstance(msg, TotalLocked):
            return self.state["supply"]
        raise UnsupportedMessage(type(msg).__name__)


def _setup(
    powers: dict[str, int] = None,
    supply: int = 100,
    quorum: int = 34,
    min_threshold: int = 0,
) -> tuple[Host, str]:
    host = Host(block_time=T0)
    host.deploy(_StakeOracle(powers or {"alice": 40, "bob": 30}, supply), "staking")
    code_id = host.register_code(Poll.instantiate)
    host.deploy(
        PollFactory(FactoryConfig(admin="admin", staking_pool="staking", poll_code_id=code_id)),
        "factory",
    )
    host.execute(
        "alice",
        "factory",
        NewPoll(META, ("A", "B"), PollConfig(duration=DURATION, quorum=quorum, min_threshold=min_threshold)),
    )
    poll = host.contract("factory").state.active_polls[0].address
    return host, poll


def _vote(host: Host, poll: str, voter: str, choice: int):
    return host.execute(voter, poll, CastVote(choice=choice, credential=f"key-{voter}"))


def _tally(host: Host, poll: str) -> list[int]:
    return list(host.contract(poll).state.tally)


class TestInit:
    def _init(self, **overrides) -> PollInit:
        fields = dict(
            metadata=META,
            config=PollConfig(duration=10, quorum=34, min_threshold=0),
            choices=("A", "B"),
            staking_pool="staking",
        )
        fields.update(overrides)
        return PollInit(**fields)

    def _ctx(self) -> ExecutionContext:
        return ExecutionContext(sender="factory", contract_address="p", block_time=T0, querier=lambda a, q: None)

    def test_instantiate(self) -> None:
        poll, response = Poll.instantiate(self._ctx(), self._init())
        assert poll.state.owner == "factory"
        assert poll.state.config.end_timestamp == T0 + 10
        assert poll.state.tally == [0, 0]
        assert response.instructions == []

    @pytest.mark.parametrize(
        "overrides",
        [
            {"choices": ("A",)},
            {"metadata": PollMetadata(title="X", description="Long enough", author="a")},
            {"metadata": PollMetadata(title="Fee", description="ab", author="a")},
            {"config": PollConfig(duration=10, quorum=101, min_threshold=0)},
            {"config": PollConfig(duration=10, quorum=34, min_threshold=-1)},
            {"config": PollConfig(duration=0, quorum=34, min_threshold=0)},
        ],
    )
    def test_rejects_bad_parameters(self, overrides: dict) -> None:
        with pytest.raises(InvalidPollConfig):
            Poll.instantiate(self._ctx(), self._init(**overrides))


class TestVoting:
    def test_vote_revote_and_live_resync(self) -> None:
        host, poll = _setup()
        _vote(host, poll, "alice", 0)
        assert _tally(host, poll) == [40, 0]
        _vote(host, poll, "alice", 1)
        assert _tally(host, poll) == [0, 40]
        receipt = host.execute("staking", "factory", UpdateVotingPower("alice", 70))
        assert receipt.dropped == []
        assert _tally(host, poll) == [0, 70]

    def test_unknown_choice(self) -> None:
        host, poll = _setup()
        with pytest.raises(UnknownChoice):
            _vote(host, poll, "alice", 5)

    def test_wrong_credential(self) -> None:
        host, poll = _setup()
        with pytest.raises(Unauthorized):
            host.execute("alice", poll, CastVote(choice=0, credential="key-bob"))
        assert _tally(host, poll) == [0, 0]

    def test_only_owner_may_sync(self) -> None:
        host, poll = _setup()
        _vote(host, poll, "alice", 0)
        with pytest.raises(Unauthorized):
            host.execute("staking", poll, UpdateVotingPower("alice", 1))
        assert _tally(host, poll) == [40, 0]

    def test_sync_for_non_voter_changes_nothing(self) -> None:
        host, poll = _setup()
        receipt = host.execute("staking", "factory", UpdateVotingPower("carol", 10))
        assert receipt.dropped == []
        assert _tally(host, poll) == [0, 0]

    def test_sync_to_finalized_poll_is_dropped(self) -> None:
        host, poll = _setup()
        _vote(host, poll, "alice", 0)
        host.advance_time(DURATION)
        host.execute("anyone", poll, Finalize())
        receipt = host.execute("staking", "factory", UpdateVotingPower("alice", 1))
        assert [d.target for d in receipt.dropped] == [poll]
        assert receipt.dropped[0].error["code"] == "ALREADY_ENDED"
        assert _tally(host, poll) == [40, 0]


class TestFinalize:
    def test_lifecycle(self) -> None:
        host, poll = _setup()
        _vote(host, poll, "alice", 0)
        with pytest.raises(NotYetEnded):
            host.execute("anyone", poll, Finalize())
        host.advance_time(DURATION)
        receipt = host.execute("anyone", poll, Finalize())
        assert receipt.data == {"valid": True, "choices": ["A", "B"], "tally": [40, 0]}
        with pytest.raises(AlreadyEnded):
            host.execute("anyone", poll, Finalize())

    def test_supply_read_at_finalize(self) -> None:
        host, poll = _setup(supply=100)
        _vote(host, poll, "alice", 0)
        host.contract("staking").state["supply"] = 1_000
        host.advance_time(DURATION)
        assert host.execute("anyone", poll, Finalize()).data["valid"] is False

    def test_tally_query(self) -> None:
        host, poll = _setup()
        _vote(host, poll, "alice", 0)
        _vote(host, poll, "bob", 1)
        with pytest.raises(NotFinalizedOrInvalid):
            host.query(poll, TallyQuery())
        host.advance_time(DURATION)
        host.execute("anyone", poll, Finalize())
        answer = host.query(poll, TallyQuery())
        assert answer.tally == [40, 30]

    def test_invalid_poll_has_no_tally(self) -> None:
        host, poll = _setup(supply=1_000)
        _vote(host, poll, "alice", 0)
        host.advance_time(DURATION)
        host.execute("anyone", poll, Finalize())
        with pytest.raises(NotFinalizedOrInvalid):
            host.query(poll, TallyQuery())


class TestQueries:
    def test_choices_and_metadata(self) -> None:
        host, poll = _setup()
        assert host.query(poll, Choices()) == ["A", "B"]
        assert host.query(poll, MetadataQuery()) == META

    def test_has_voted_and_vote(self) -> None:
        host, poll = _setup()
        _vote(host, poll, "bob", 1)
        assert host.query(poll, HasVoted("bob")) is True
        assert host.query(poll, HasVoted("alice")) is False
        assert host.query(poll, VoteQuery("bob", "key-bob")) == Vote(choice=1, voting_power=30)
        with pytest.raises(Unauthorized):
            host.query(poll, VoteQuery("bob", "key-alice"))

    def test_status(self) -> None:
        host, poll = _setup()
        status = host.query(poll, PollStatusQuery())
        assert status["status"] == "open"
        assert status["end_timestamp"] == T0 + DURATION
        host.advance_time(DURATION)
        host.execute("anyone", poll, Finalize())
        assert host.query(poll, PollStatusQuery())["status"] == "ended_invalid"
