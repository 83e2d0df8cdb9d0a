"""Poll contract — one stake-weighted vote, created by the poll factory.

Lifecycle:
    instantiate  validate config, record the factory as owner, then run the
                 init hook (the factory's RegisterForUpdates handshake)
    CastVote     voting power is the voter's staking balance, read through
                 the staking pool with the voter's credential
    UpdateVotingPower
                 owner (factory) only; re-weights an existing vote
    Finalize     anyone, once now >= end_timestamp; reads the live total
                 stake as the eligible supply
"""

from __future__ import annotations

from typing import Any, Callable

import structlog

from stakegov.errors import InvalidPollConfig, Unauthorized, UnsupportedMessage
from stakegov.governance.tally import TallyEngine
from stakegov.models.execution import ExecutionContext, Response
from stakegov.models.poll import (
    CastVote,
    Choices,
    Finalize,
    HasVoted,
    MetadataQuery,
    PollInit,
    PollState,
    PollStatusQuery,
    StoredPollConfig,
    TallyQuery,
    UpdateVotingPower,
    VoteQuery,
)
from stakegov.models.staking import Balance, TotalLocked
from stakegov.persistence.event_log import EventKind

log = structlog.get_logger(__name__)

MIN_CHOICES = 2
MIN_TITLE_LENGTH = 2
MIN_DESCRIPTION_LENGTH = 3


def validate_init(msg: PollInit) -> None:
    """Reject poll parameters that cannot produce a meaningful vote."""
    if len(msg.choices) < MIN_CHOICES:
        raise InvalidPollConfig(f"a poll needs at least {MIN_CHOICES} choices")
    if len(msg.metadata.title) < MIN_TITLE_LENGTH:
        raise InvalidPollConfig(f"title must be at least {MIN_TITLE_LENGTH} characters")
    if len(msg.metadata.description) < MIN_DESCRIPTION_LENGTH:
        raise InvalidPollConfig(
            f"description must be at least {MIN_DESCRIPTION_LENGTH} characters"
        )
    if msg.config.duration <= 0:
        raise InvalidPollConfig(f"duration must be positive, got {msg.config.duration}")
    for name in ("quorum", "min_threshold"):
        value = getattr(msg.config, name)
        if not 0 <= value <= 100:
            raise InvalidPollConfig(f"{name} must be within 0..100, got {value}")


class Poll:
    """Contract handler for a single poll."""

    def __init__(self, state: PollState) -> None:
        self.state = state
        self._handlers: dict[type, Callable[[ExecutionContext, Any], Response]] = {
            CastVote: self._cast_vote,
            UpdateVotingPower: self._update_voting_power,
            Finalize: self._finalize,
        }

    @classmethod
    def instantiate(cls, ctx: ExecutionContext, msg: PollInit) -> tuple[Poll, Response]:
        """Create a poll owned by ctx.sender. The init hook runs after creation."""
        validate_init(msg)
        end_timestamp = ctx.block_time + msg.config.duration
        poll = cls(
            PollState(
                owner=ctx.sender,
                staking_pool=msg.staking_pool,
                metadata=msg.metadata,
                config=StoredPollConfig(
                    end_timestamp=end_timestamp,
                    quorum=msg.config.quorum,
                    min_threshold=msg.config.min_threshold,
                    choices=list(msg.choices),
                ),
                tally=[0] * len(msg.choices),
            )
        )
        log.info("poll_opened", poll=ctx.contract_address, end_timestamp=end_timestamp)
        response = Response(data={"address": ctx.contract_address}).add_event(
            EventKind.POLL_OPENED,
            owner=ctx.sender,
            title=msg.metadata.title,
            choices=list(msg.choices),
            end_timestamp=end_timestamp,
        )
        if msg.init_hook is not None:
            response.add_instruction(msg.init_hook)
        return poll, response

    def _engine(self) -> TallyEngine:
        return TallyEngine(self.state)

    def handle(self, ctx: ExecutionContext, msg: Any) -> Response:
        handler = self._handlers.get(type(msg))
        if handler is None:
            raise UnsupportedMessage(f"poll does not handle {type(msg).__name__}")
        return handler(ctx, msg)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _cast_vote(self, ctx: ExecutionContext, msg: CastVote) -> Response:
        power = ctx.querier(self.state.staking_pool, Balance(ctx.sender, msg.credential))
        vote = self._engine().cast_vote(ctx.sender, msg.choice, power)
        return Response(data={"status": "success"}).add_event(
            EventKind.VOTE_CAST,
            voter=ctx.sender,
            choice=vote.choice,
            voting_power=vote.voting_power,
        )

    def _update_voting_power(self, ctx: ExecutionContext, msg: UpdateVotingPower) -> Response:
        if ctx.sender != self.state.owner:
            raise Unauthorized(ctx.sender, "UpdateVotingPower", "only the poll owner may sync voting power")
        synced = self._engine().sync_voting_power(msg.voter, msg.new_power)
        response = Response(data={"status": "success", "synced": synced})
        if synced:
            response.add_event(
                EventKind.VOTING_POWER_SYNCED, voter=msg.voter, new_power=msg.new_power
            )
        return response

    def _finalize(self, ctx: ExecutionContext, msg: Finalize) -> Response:
        supply = ctx.querier(self.state.staking_pool, TotalLocked())
        answer = self._engine().finalize(eligible_supply=supply, now=ctx.block_time)
        return Response(
            data={"valid": answer.valid, "choices": answer.choices, "tally": answer.tally}
        ).add_event(
            EventKind.POLL_FINALIZED,
            valid=answer.valid,
            tally=answer.tally,
            eligible_supply=supply,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, ctx: ExecutionContext, msg: Any) -> Any:
        if isinstance(msg, Choices):
            return list(self.state.config.choices)
        if isinstance(msg, HasVoted):
            return self._engine().has_voted(msg.voter)
        if isinstance(msg, TallyQuery):
            return self._engine().final_tally()
        if isinstance(msg, VoteQuery):
            # The staking pool rejects a wrong credential
            ctx.querier(self.state.staking_pool, Balance(msg.voter, msg.credential))
            return self.state.votes.get(msg.voter)
        if isinstance(msg, PollStatusQuery):
            config = self.state.config
            return {
                "status": config.status.value,
                "end_timestamp": config.end_timestamp,
                "quorum": config.quorum,
                "min_threshold": config.min_threshold,
                "choices": list(config.choices),
                "ended": config.ended,
                "valid": config.valid,
            }
        if isinstance(msg, MetadataQuery):
            return self.state.metadata
        raise UnsupportedMessage(f"poll does not answer {type(msg).__name__}")
