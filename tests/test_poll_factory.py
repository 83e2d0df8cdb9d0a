"""Tests for the poll factory — proves the registration handshake and pruning."""

import pytest

from stakegov.config import FactoryConfig, PollDefaults
from stakegov.errors import ChallengeMismatch, InvalidPollConfig, Unauthorized
from stakegov.governance import challenge
from stakegov.governance.poll import Poll
from stakegov.governance.registry import PollFactory
from stakegov.host.chain import Host
from stakegov.models.execution import ExecutionContext, Response
from stakegov.models.poll import (
    ActivePolls,
    DefaultPollConfig,
    NewPoll,
    PollConfig,
    PollInit,
    PollMetadata,
    RegisterForUpdates,
    UpdateDefaultPollConfig,
    UpdatePollCode,
    UpdateVotingPower,
)
from stakegov.models.staking import ChangeAdmin


T0 = 1_700_000_000
META = PollMetadata(title="Fee change", description="Raise the fee", author="alice")


class _Silent:
    """Poll code double that never runs its init hook."""

    def __init__(self) -> None:
        self.state = {}

    def handle(self, ctx: ExecutionContext, msg: object) -> Response:
        return Response()

    def query(self, ctx: ExecutionContext, msg: object) -> None:
        return None


def _silent_code(captured: list[PollInit]):
    def instantiate(ctx: ExecutionContext, msg: PollInit):
        captured.append(msg)
        return _Silent(), Response()
    return instantiate


def _setup(code=Poll.instantiate, defaults: PollDefaults = None) -> Host:
    host = Host(block_time=T0)
    code_id = host.register_code(code)
    host.deploy(
        PollFactory(
            FactoryConfig(admin="admin", staking_pool="staking", poll_code_id=code_id),
            defaults=defaults,
        ),
        "factory",
    )
    return host


def _factory(host: Host):
    return host.contract("factory").state


def _new_poll(host: Host, duration: int = 100):
    return host.execute(
        "alice",
        "factory",
        NewPoll(META, ("yes", "no"), PollConfig(duration=duration, quorum=34, min_threshold=0)),
    )


class TestChallenge:
    def test_issue_and_match(self) -> None:
        issued = challenge.issue()
        assert len(issued.preimage) == 2 * challenge.PREIMAGE_BYTES
        assert challenge.matches(issued.digest, issued.preimage)
        assert not challenge.matches(issued.digest, "guess")

    def test_no_outstanding_challenge(self) -> None:
        assert not challenge.matches(None, "anything")

    def test_fresh_each_time(self) -> None:
        assert challenge.issue().preimage != challenge.issue().preimage


class TestCreatePoll:
    def test_poll_registers_itself(self) -> None:
        host = _setup()
        receipt = _new_poll(host)
        factory = _factory(host)
        assert receipt.data == {"label": "poll-1"}
        assert len(factory.active_polls) == 1
        address = factory.active_polls[0].address
        assert factory.active_polls[0].end_time == T0 + 100
        assert factory.challenge is None
        assert host.label_of(address) == "poll-1"
        assert host.query("factory", ActivePolls()) == [address]

    def test_labels_count_up(self) -> None:
        host = _setup()
        _new_poll(host)
        _new_poll(host)
        labels = [host.label_of(p.address) for p in _factory(host).active_polls]
        assert labels == ["poll-1", "poll-2"]

    def test_default_config_used(self) -> None:
        host = _setup(defaults=PollDefaults(duration=500, quorum=10, min_threshold=1))
        host.execute("alice", "factory", NewPoll(META, ("yes", "no")))
        poll = host.contract(_factory(host).active_polls[0].address)
        assert poll.state.config.end_timestamp == T0 + 500
        assert poll.state.config.quorum == 10
        assert poll.state.owner == "factory"

    def test_invalid_poll_rolls_back_factory(self) -> None:
        host = _setup()
        before = set(host.addresses())
        with pytest.raises(InvalidPollConfig):
            host.execute("alice", "factory", NewPoll(META, ("only",)))
        assert _factory(host).config.id_counter == 0
        assert _factory(host).challenge is None
        assert set(host.addresses()) == before

    def test_non_positive_duration_rejected(self) -> None:
        host = _setup()
        with pytest.raises(InvalidPollConfig):
            _new_poll(host, duration=0)


class TestRegistration:
    def test_wrong_preimage_leaves_active_set_unchanged(self) -> None:
        captured: list[PollInit] = []
        host = _setup(code=_silent_code(captured))
        _new_poll(host)
        assert _factory(host).challenge is not None
        with pytest.raises(ChallengeMismatch):
            host.execute("mallory", "factory", RegisterForUpdates("bad", T0 + 100))
        assert _factory(host).active_polls == []
        assert _factory(host).challenge is not None

    def test_no_pending_challenge(self) -> None:
        host = _setup()
        with pytest.raises(ChallengeMismatch):
            host.execute("mallory", "factory", RegisterForUpdates("x", T0))

    def test_preimage_is_single_use(self) -> None:
        captured: list[PollInit] = []
        host = _setup(code=_silent_code(captured))
        _new_poll(host)
        hook = captured[0].init_hook
        host.execute("poll-a", "factory", hook.msg)
        with pytest.raises(ChallengeMismatch):
            host.execute("poll-b", "factory", hook.msg)
        assert [p.address for p in _factory(host).active_polls] == ["poll-a"]

    def test_new_creation_overwrites_challenge(self) -> None:
        captured: list[PollInit] = []
        host = _setup(code=_silent_code(captured))
        _new_poll(host)
        _new_poll(host)
        with pytest.raises(ChallengeMismatch):
            host.execute("poll-a", "factory", captured[0].init_hook.msg)
        host.execute("poll-b", "factory", captured[1].init_hook.msg)


class TestPruning:
    def test_expired_polls_pruned_on_next_call(self) -> None:
        host = _setup()
        _new_poll(host, duration=100)
        host.advance_time(101)
        host.execute("staking", "factory", UpdateVotingPower("alice", 1))
        assert _factory(host).active_polls == []

    def test_poll_ending_now_is_kept(self) -> None:
        host = _setup()
        _new_poll(host, duration=100)
        host.advance_time(100)
        host.execute("staking", "factory", UpdateVotingPower("alice", 1))
        assert len(_factory(host).active_polls) == 1


class TestRouting:
    def test_only_staking_pool_may_route(self) -> None:
        host = _setup()
        with pytest.raises(Unauthorized):
            host.execute("alice", "factory", UpdateVotingPower("alice", 1))

    def test_routes_to_every_active_poll(self) -> None:
        host = _setup()
        _new_poll(host)
        _new_poll(host)
        receipt = host.execute("staking", "factory", UpdateVotingPower("alice", 5))
        assert receipt.data == {"status": "success"}
        assert receipt.dropped == []


class TestAdministration:
    def test_update_poll_code(self) -> None:
        host = _setup()
        with pytest.raises(Unauthorized):
            host.execute("alice", "factory", UpdatePollCode(7))
        host.execute("admin", "factory", UpdatePollCode(7))
        assert _factory(host).config.poll_code_id == 7

    def test_update_default_config(self) -> None:
        host = _setup()
        host.execute("admin", "factory", UpdateDefaultPollConfig(duration=60, quorum=50))
        assert host.query("factory", DefaultPollConfig()) == PollConfig(
            duration=60, quorum=50, min_threshold=0
        )

    def test_default_config_validated(self) -> None:
        host = _setup()
        with pytest.raises(InvalidPollConfig):
            host.execute("admin", "factory", UpdateDefaultPollConfig(quorum=101))
        with pytest.raises(InvalidPollConfig):
            host.execute("admin", "factory", UpdateDefaultPollConfig(duration=0))

    def test_change_admin(self) -> None:
        host = _setup()
        host.execute("admin", "factory", ChangeAdmin("carol"))
        with pytest.raises(Unauthorized):
            host.execute("admin", "factory", UpdatePollCode(2))
        host.execute("carol", "factory", UpdatePollCode(2))
