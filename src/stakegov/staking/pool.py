"""Staking pool contract — incentivized-token deposits earning a reward stream.

Deposits and withdrawals are two-phase (see stakegov.staking.continuation):

    Phase 1  Receive(deposit) / Redeem   → UpdateAllocation(hook) to master
    Phase 2  NotifyAllocation(amount, hook) from master
             → allocate(amount), then settle the hooked intent,
               pay pending rewards, broadcast the new weight.

Authorization:
- Receive only from the incentivized token contract.
- NotifyAllocation only from the master or the admin.
- Subscriber management, stop/resume and admin change only from the admin.

Circuit breaker: while stopped, only EmergencyRedeem and ResumeContract
are accepted; everything else raises Paused. EmergencyRedeem returns the
caller's stake and forfeits every unclaimed reward. It is available only
while the pool is stopped.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable, Optional

import structlog

from stakegov.config import StakingConfig, require_admin
from stakegov.errors import (
    MalformedContinuation,
    Paused,
    Unauthorized,
    UnsupportedMessage,
)
from stakegov.models.execution import Execute, ExecutionContext, Response
from stakegov.models.staking import (
    AddSubscribers,
    Balance,
    ChangeAdmin,
    ContractRef,
    ContractStatus,
    EmergencyRedeem,
    IncentivizedToken,
    NotifyAllocation,
    PendingRewards,
    Receive,
    Redeem,
    RemoveSubscribers,
    ResumeContract,
    RewardToken,
    StakingState,
    StopContract,
    Subscribers,
    TotalLocked,
)
from stakegov.models.token import PendingAllocation, Transfer, UpdateAllocation
from stakegov.persistence.event_log import EventKind
from stakegov.staking import continuation
from stakegov.staking.continuation import DepositIntent, WithdrawIntent
from stakegov.staking.fanout import SubscriberFanout
from stakegov.staking.ledger import RewardLedger
from stakegov.staking.positions import PositionStore, Settlement, StakeDirection

log = structlog.get_logger(__name__)

# (address, credential) -> credential is valid for address
Authenticator = Callable[[str, str], bool]


class StakingPool:
    """Contract handler for one staking pool.

    Usage:
        pool = StakingPool(config, authenticator=keyring.verify)
        host.deploy(pool, address="staking")
        host.execute("alice", "inc_token", Send("staking", 100, DEPOSIT_MSG))
    """

    def __init__(
        self,
        config: StakingConfig,
        authenticator: Authenticator,
        subscribers: Optional[Iterable[ContractRef]] = None,
    ) -> None:
        self.state = StakingState(config=config)
        SubscriberFanout(self.state.subscribers).add(subscribers or ())
        self._authenticator = authenticator
        self._handlers: dict[type, Callable[[ExecutionContext, Any], Response]] = {
            Receive: self._receive,
            Redeem: self._redeem,
            NotifyAllocation: self._notify_allocation,
            EmergencyRedeem: self._emergency_redeem_running,
            AddSubscribers: self._add_subscribers,
            RemoveSubscribers: self._remove_subscribers,
            StopContract: self._stop,
            ResumeContract: self._resume,
            ChangeAdmin: self._change_admin,
        }
        self._queries: dict[type, Callable[[ExecutionContext, Any], Any]] = {
            TotalLocked: lambda ctx, q: self.state.reward_pool.total_staked,
            PendingRewards: self._query_pending_rewards,
            Balance: self._query_balance,
            ContractStatus: lambda ctx, q: {"is_stopped": self.state.config.is_stopped},
            Subscribers: lambda ctx, q: [s.address for s in self.state.subscribers],
            RewardToken: lambda ctx, q: self.state.config.reward_token,
            IncentivizedToken: lambda ctx, q: self.state.config.inc_token,
        }

    # ------------------------------------------------------------------
    # Accounting components bound to the current state
    # ------------------------------------------------------------------

    def _ledger(self) -> RewardLedger:
        return RewardLedger(self.state.reward_pool)

    def _positions(self) -> PositionStore:
        return PositionStore(self.state.positions, self._ledger())

    def _fanout(self) -> SubscriberFanout:
        return SubscriberFanout(self.state.subscribers)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, ctx: ExecutionContext, msg: Any) -> Response:
        if self.state.config.is_stopped:
            if isinstance(msg, EmergencyRedeem):
                return self._emergency_redeem(ctx)
            if isinstance(msg, ResumeContract):
                return self._resume(ctx, msg)
            raise Paused(type(msg).__name__)

        handler = self._handlers.get(type(msg))
        if handler is None:
            raise UnsupportedMessage(f"staking pool does not handle {type(msg).__name__}")
        return handler(ctx, msg)

    def query(self, ctx: ExecutionContext, msg: Any) -> Any:
        handler = self._queries.get(type(msg))
        if handler is None:
            raise UnsupportedMessage(f"staking pool does not answer {type(msg).__name__}")
        return handler(ctx, msg)

    # ------------------------------------------------------------------
    # Phase 1: capture intent and ask the master to allocate
    # ------------------------------------------------------------------

    def _receive(self, ctx: ExecutionContext, msg: Receive) -> Response:
        config = self.state.config
        if ctx.sender != config.inc_token:
            raise Unauthorized(
                ctx.sender,
                "Receive",
                f"this token is not supported. Supported: {config.inc_token}, "
                f"given: {ctx.sender}",
            )
        _require_deposit_payload(msg.msg)
        intent = DepositIntent(participant=msg.from_address, amount=msg.amount)
        return self._request_allocation(ctx, intent).add_event(
            EventKind.DEPOSIT_REQUESTED, participant=msg.from_address, amount=msg.amount
        )

    def _redeem(self, ctx: ExecutionContext, msg: Redeem) -> Response:
        if msg.amount is not None and msg.amount < 0:
            raise ValueError(f"Redeem amount must be non-negative, got {msg.amount}")
        intent = WithdrawIntent(participant=ctx.sender, amount=msg.amount)
        return self._request_allocation(ctx, intent).add_event(
            EventKind.REDEEM_REQUESTED, participant=ctx.sender, amount=msg.amount
        )

    def _request_allocation(
        self,
        ctx: ExecutionContext,
        intent: continuation.Continuation,
    ) -> Response:
        hook = continuation.encode(intent)
        return Response().add_instruction(
            Execute(
                contract_address=self.state.config.master,
                msg=UpdateAllocation(pool=ctx.contract_address, hook=hook),
            )
        )

    # ------------------------------------------------------------------
    # Phase 2: allocation callback, then run the continuation
    # ------------------------------------------------------------------

    def _notify_allocation(self, ctx: ExecutionContext, msg: NotifyAllocation) -> Response:
        config = self.state.config
        if ctx.sender not in (config.master, config.admin):
            raise Unauthorized(ctx.sender, "NotifyAllocation")

        pool = self._ledger().allocate(msg.amount)
        response = Response().add_event(
            EventKind.ALLOCATION_APPLIED,
            amount=msg.amount,
            residue=pool.residue,
            acc_reward_per_share=pool.acc_reward_per_share,
            total_staked=pool.total_staked,
        )
        if msg.hook is None:
            return response

        intent = continuation.decode(msg.hook)
        if isinstance(intent, DepositIntent):
            settlement = self._positions().settle_and_resize(
                intent.participant, intent.amount, StakeDirection.DEPOSIT
            )
        else:
            settlement = self._positions().settle_and_resize(
                intent.participant, intent.amount, StakeDirection.WITHDRAW
            )
        return self._settlement_effects(response, settlement)

    def _settlement_effects(self, response: Response, settlement: Settlement) -> Response:
        config = self.state.config
        participant = settlement.participant

        if settlement.pending_reward > 0:
            response.add_instruction(
                Execute(config.reward_token, Transfer(participant, settlement.pending_reward))
            )
        if settlement.direction == StakeDirection.WITHDRAW and settlement.delta > 0:
            response.add_instruction(
                Execute(config.inc_token, Transfer(participant, settlement.delta))
            )
        for notification in self._fanout().notifications(participant, settlement.locked):
            response.add_instruction(notification)

        response.data = {"status": "success", "locked": settlement.locked}
        return response.add_event(
            EventKind.POSITION_SETTLED,
            participant=participant,
            direction=settlement.direction.value,
            delta=settlement.delta,
            reward_paid=settlement.pending_reward,
            locked=settlement.locked,
            total_staked=self.state.reward_pool.total_staked,
        )

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    def _emergency_redeem_running(self, ctx: ExecutionContext, msg: EmergencyRedeem) -> Response:
        raise UnsupportedMessage("EmergencyRedeem is only available while the pool is stopped")

    def _emergency_redeem(self, ctx: ExecutionContext) -> Response:
        """YOU SHOULD NEVER USE THIS unless the pool is broken: rewards are forfeited."""
        unlocked = self._positions().emergency_exit(ctx.sender)
        response = Response(data={"status": "success", "unlocked": unlocked})
        if unlocked > 0:
            response.add_instruction(
                Execute(self.state.config.inc_token, Transfer(ctx.sender, unlocked))
            )
        for notification in self._fanout().notifications(ctx.sender, 0):
            response.add_instruction(notification)
        return response.add_event(
            EventKind.EMERGENCY_REDEEMED, participant=ctx.sender, unlocked=unlocked
        )

    def _stop(self, ctx: ExecutionContext, msg: StopContract) -> Response:
        require_admin(self.state.config.admin, ctx.sender, "StopContract")
        self.state.config.is_stopped = True
        log.warning("staking_pool_stopped", admin=ctx.sender)
        return Response(data={"status": "success"}).add_event(EventKind.CONTRACT_STOPPED)

    def _resume(self, ctx: ExecutionContext, msg: ResumeContract) -> Response:
        require_admin(self.state.config.admin, ctx.sender, "ResumeContract")
        self.state.config.is_stopped = False
        log.info("staking_pool_resumed", admin=ctx.sender)
        return Response(data={"status": "success"}).add_event(EventKind.CONTRACT_RESUMED)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def _change_admin(self, ctx: ExecutionContext, msg: ChangeAdmin) -> Response:
        require_admin(self.state.config.admin, ctx.sender, "ChangeAdmin")
        previous = self.state.config.admin
        self.state.config.admin = msg.address
        return Response(data={"status": "success"}).add_event(
            EventKind.ADMIN_CHANGED, previous=previous, admin=msg.address
        )

    def _add_subscribers(self, ctx: ExecutionContext, msg: AddSubscribers) -> Response:
        require_admin(self.state.config.admin, ctx.sender, "AddSubscribers")
        added = self._fanout().add(msg.contracts)
        return Response(data={"status": "success"}).add_event(
            EventKind.SUBSCRIBERS_ADDED, contracts=[c.address for c in added]
        )

    def _remove_subscribers(self, ctx: ExecutionContext, msg: RemoveSubscribers) -> Response:
        require_admin(self.state.config.admin, ctx.sender, "RemoveSubscribers")
        removed = self._fanout().remove(msg.addresses)
        return Response(data={"status": "success"}).add_event(
            EventKind.SUBSCRIBERS_REMOVED, contracts=[c.address for c in removed]
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _authenticate(self, address: str, credential: str) -> None:
        if not self._authenticator(address, credential):
            raise Unauthorized(
                address, "query", "wrong viewing key for this address or viewing key not set"
            )

    def _query_balance(self, ctx: ExecutionContext, q: Balance) -> int:
        self._authenticate(q.address, q.credential)
        return self._positions().get(q.address).locked

    def _query_pending_rewards(self, ctx: ExecutionContext, q: PendingRewards) -> int:
        """Pending rewards including what the master would allocate right now.

        An estimate for display: the master's answer is not validated.
        """
        self._authenticate(q.address, q.credential)
        upcoming = ctx.querier(
            self.state.config.master,
            PendingAllocation(pool=ctx.contract_address, at_time=ctx.block_time),
        )
        acc = self._ledger().projected_accumulator(upcoming)
        return self._positions().pending(q.address, acc)


def _require_deposit_payload(raw: Optional[bytes]) -> None:
    if raw is None:
        raise MalformedContinuation("token send to the staking pool carried no message")
    try:
        body = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedContinuation(f"receive message is not valid JSON: {exc}") from exc
    if body != {"deposit": {}}:
        raise UnsupportedMessage(f"unsupported receive message: {body!r}")
