"""Poll factory — creates polls and routes live voting power to them.

Registration handshake:
1. NewPoll stores sha256(preimage) as the outstanding challenge and emits
   an Instantiate for the poll code, carrying an init hook that makes the
   new poll send RegisterForUpdates(preimage, end_time) back here.
2. RegisterForUpdates checks the pre-image, clears the challenge and adds
   the sender to the active set.

Every mutating message first prunes polls whose end_time has passed.
A poll whose end_time equals the current time is still active.

Routing: UpdateVotingPower is accepted only from the staking pool and is
forwarded, best-effort, to every active poll.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Optional

import structlog

from stakegov.config import FactoryConfig, PollDefaults, require_admin
from stakegov.errors import ChallengeMismatch, InvalidPollConfig, Unauthorized, UnsupportedMessage
from stakegov.governance import challenge
from stakegov.models.execution import Execute, ExecutionContext, Instantiate, Response
from stakegov.models.poll import (
    ActivePoll,
    ActivePolls,
    DefaultPollConfig,
    FactoryState,
    NewPoll,
    PollConfig,
    PollInit,
    RegisterForUpdates,
    UpdateDefaultPollConfig,
    UpdatePollCode,
    UpdateVotingPower,
)
from stakegov.models.staking import ChangeAdmin
from stakegov.persistence.event_log import EventKind

log = structlog.get_logger(__name__)


class PollFactory:
    """Contract handler for the poll factory.

    Usage:
        factory = PollFactory(FactoryConfig(admin="admin", staking_pool="staking",
                                            poll_code_id=poll_code))
        host.deploy(factory, address="factory")
        host.execute("alice", "factory", NewPoll(metadata, ("yes", "no")))
    """

    def __init__(self, config: FactoryConfig, defaults: Optional[PollDefaults] = None) -> None:
        self.state = FactoryState(
            config=config,
            defaults=replace(defaults) if defaults is not None else PollDefaults(),
        )
        self._handlers: dict[type, Callable[[ExecutionContext, Any], Response]] = {
            NewPoll: self._new_poll,
            RegisterForUpdates: self._register_for_updates,
            UpdateVotingPower: self._update_voting_power,
            UpdatePollCode: self._update_poll_code,
            UpdateDefaultPollConfig: self._update_default_poll_config,
            ChangeAdmin: self._change_admin,
        }

    def handle(self, ctx: ExecutionContext, msg: Any) -> Response:
        handler = self._handlers.get(type(msg))
        if handler is None:
            raise UnsupportedMessage(f"poll factory does not handle {type(msg).__name__}")
        response = Response()
        self._prune(ctx.block_time, response)
        handled = handler(ctx, msg)
        handled.events[:0] = response.events
        return handled

    def query(self, ctx: ExecutionContext, msg: Any) -> Any:
        if isinstance(msg, ActivePolls):
            return [poll.address for poll in self.state.active_polls]
        if isinstance(msg, DefaultPollConfig):
            return PollConfig.from_defaults(self.state.defaults)
        raise UnsupportedMessage(f"poll factory does not answer {type(msg).__name__}")

    # ------------------------------------------------------------------
    # Active set maintenance
    # ------------------------------------------------------------------

    def _prune(self, now: int, response: Response) -> None:
        expired = [p for p in self.state.active_polls if p.end_time < now]
        if not expired:
            return
        self.state.active_polls = [p for p in self.state.active_polls if p.end_time >= now]
        log.info("polls_pruned", count=len(expired), remaining=len(self.state.active_polls))
        response.add_event(EventKind.POLLS_PRUNED, polls=[p.address for p in expired])

    # ------------------------------------------------------------------
    # Poll creation and registration
    # ------------------------------------------------------------------

    def _new_poll(self, ctx: ExecutionContext, msg: NewPoll) -> Response:
        config = msg.config or PollConfig.from_defaults(self.state.defaults)
        if config.duration <= 0:
            raise InvalidPollConfig(f"poll duration must be positive, got {config.duration}")

        issued = challenge.issue()
        self.state.challenge = issued.digest
        self.state.config.id_counter += 1
        label = f"poll-{self.state.config.id_counter}"

        init = PollInit(
            metadata=msg.metadata,
            config=config,
            choices=tuple(msg.choices),
            staking_pool=self.state.config.staking_pool,
            init_hook=Execute(
                contract_address=ctx.contract_address,
                msg=RegisterForUpdates(
                    challenge=issued.preimage,
                    end_time=ctx.block_time + config.duration,
                ),
            ),
        )
        log.info("poll_requested", label=label, author=msg.metadata.author)
        return (
            Response(data={"label": label})
            .add_instruction(
                Instantiate(code_id=self.state.config.poll_code_id, msg=init, label=label)
            )
            .add_event(
                EventKind.POLL_CREATED,
                label=label,
                title=msg.metadata.title,
                choices=list(msg.choices),
                duration=config.duration,
                quorum=config.quorum,
                min_threshold=config.min_threshold,
            )
        )

    def _register_for_updates(self, ctx: ExecutionContext, msg: RegisterForUpdates) -> Response:
        if not challenge.matches(self.state.challenge, msg.challenge):
            raise ChallengeMismatch(ctx.sender)

        self.state.challenge = None
        self.state.active_polls.append(ActivePoll(address=ctx.sender, end_time=msg.end_time))
        log.info("poll_registered", poll=ctx.sender, end_time=msg.end_time)
        return Response(data={"status": "success"}).add_event(
            EventKind.POLL_REGISTERED, poll=ctx.sender, end_time=msg.end_time
        )

    # ------------------------------------------------------------------
    # Voting power routing
    # ------------------------------------------------------------------

    def _update_voting_power(self, ctx: ExecutionContext, msg: UpdateVotingPower) -> Response:
        if ctx.sender != self.state.config.staking_pool:
            raise Unauthorized(
                ctx.sender, "UpdateVotingPower", "only the staking pool may update voting power"
            )
        response = Response(data={"status": "success"})
        for poll in self.state.active_polls:
            response.add_instruction(
                Execute(contract_address=poll.address, msg=msg, best_effort=True)
            )
        return response.add_event(
            EventKind.VOTING_POWER_ROUTED,
            voter=msg.voter,
            new_power=msg.new_power,
            polls=[p.address for p in self.state.active_polls],
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def _update_poll_code(self, ctx: ExecutionContext, msg: UpdatePollCode) -> Response:
        require_admin(self.state.config.admin, ctx.sender, "UpdatePollCode")
        self.state.config.poll_code_id = msg.code_id
        return Response(data={"status": "success"}).add_event(
            EventKind.FACTORY_CONFIG_UPDATED, poll_code_id=msg.code_id
        )

    def _update_default_poll_config(
        self, ctx: ExecutionContext, msg: UpdateDefaultPollConfig
    ) -> Response:
        require_admin(self.state.config.admin, ctx.sender, "UpdateDefaultPollConfig")
        defaults = self.state.defaults
        if msg.duration is not None:
            if msg.duration <= 0:
                raise InvalidPollConfig(f"poll duration must be positive, got {msg.duration}")
            defaults.duration = msg.duration
        for name in ("quorum", "min_threshold"):
            value = getattr(msg, name)
            if value is None:
                continue
            if not 0 <= value <= 100:
                raise InvalidPollConfig(f"{name} must be within 0..100, got {value}")
            setattr(defaults, name, value)
        return Response(data={"status": "success"}).add_event(
            EventKind.FACTORY_CONFIG_UPDATED,
            duration=defaults.duration,
            quorum=defaults.quorum,
            min_threshold=defaults.min_threshold,
        )

    def _change_admin(self, ctx: ExecutionContext, msg: ChangeAdmin) -> Response:
        require_admin(self.state.config.admin, ctx.sender, "ChangeAdmin")
        previous = self.state.config.admin
        self.state.config.admin = msg.address
        return Response(data={"status": "success"}).add_event(
            EventKind.ADMIN_CHANGED, previous=previous, admin=msg.address
        )
