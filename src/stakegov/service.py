"""StakeGov service — unified facade over a complete deployment.

This is the primary interface for programmatic access. One service owns
one in-memory host with the full contract set deployed:
- incentivized token and reward token (reference tokens)
- master coordinator (reference emission schedule)
- staking pool, subscribed by the poll factory
- poll factory, creating polls from the registered poll code

All operations produce typed results. A ContractError becomes a failed
ServiceResult carrying the error code and details; the host has already
rolled the transaction back. Any other exception propagates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import structlog

from stakegov.config import FactoryConfig, StakingConfig, SystemConfig
from stakegov.errors import ContractError
from stakegov.governance.poll import Poll
from stakegov.governance.registry import PollFactory
from stakegov.host.chain import Host, Receipt
from stakegov.host.keyring import Keyring
from stakegov.host.master import ReferenceMaster
from stakegov.host.token import ReferenceToken
from stakegov.models.poll import (
    ActivePolls,
    CastVote,
    Finalize,
    HasVoted,
    NewPoll,
    PollConfig,
    PollMetadata,
    PollStatusQuery,
    TallyQuery,
)
from stakegov.models.staking import (
    DEPOSIT_MSG,
    Balance,
    ContractRef,
    ContractStatus,
    EmergencyRedeem,
    PendingRewards,
    Redeem,
    ResumeContract,
    StopContract,
    Subscribers,
    TotalLocked,
)
from stakegov.models.token import Mint, Send, SetWeights, TokenBalance
from stakegov.persistence.event_log import EventKind, EventLog
from stakegov.staking.pool import StakingPool

log = structlog.get_logger(__name__)


@dataclass
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Deployment:
    """Addresses of the deployed contract set."""
    admin: str = "admin"
    inc_token: str = "inc_token"
    reward_token: str = "reward_token"
    master: str = "master"
    staking_pool: str = "staking_pool"
    poll_factory: str = "poll_factory"


class StakeGovService:
    """Facade for staking and governance operations.

    Usage:
        service = StakeGovService(SystemConfig.from_env(), start_time=1_700_000_000)
        service.fund("alice", 1_000)
        service.create_viewing_key("alice")
        service.deposit("alice", 100)
        service.advance_time(60)
        poll = service.create_poll("alice", "Raise fee", "Raise the fee to 1%",
                                   ["yes", "no"]).data["poll"]
        service.vote("alice", poll, 0)
    """

    def __init__(
        self,
        config: Optional[SystemConfig] = None,
        *,
        start_time: int = 0,
        deployment: Deployment = Deployment(),
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._config = config or SystemConfig()
        self._addresses = deployment
        if event_log is None:
            event_log = EventLog(storage_path=self._config.event_log_path)
        self._host = Host(block_time=start_time, event_log=event_log)
        self._keyring = Keyring()
        self._keys: dict[str, str] = {}
        self._deploy()

    def _deploy(self) -> None:
        a = self._addresses
        host = self._host
        host.deploy(ReferenceToken("INC", minters=[a.admin]), a.inc_token)
        host.deploy(ReferenceToken("RWD", minters=[a.master]), a.reward_token)
        host.deploy(
            ReferenceMaster(a.admin, a.reward_token, self._config.reward_per_second), a.master
        )
        host.deploy(
            StakingPool(
                StakingConfig(
                    admin=a.admin,
                    reward_token=a.reward_token,
                    inc_token=a.inc_token,
                    master=a.master,
                ),
                authenticator=self._keyring.verify,
                subscribers=[ContractRef(a.poll_factory)],
            ),
            a.staking_pool,
        )
        poll_code = host.register_code(Poll.instantiate)
        host.deploy(
            PollFactory(
                FactoryConfig(admin=a.admin, staking_pool=a.staking_pool, poll_code_id=poll_code),
                defaults=self._config.poll_defaults,
            ),
            a.poll_factory,
        )
        host.execute(a.admin, a.master, SetWeights(weights=((a.staking_pool, 1),)))
        log.info("deployment_ready", staking_pool=a.staking_pool, poll_factory=a.poll_factory)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def host(self) -> Host:
        return self._host

    @property
    def addresses(self) -> Deployment:
        return self._addresses

    @property
    def event_log(self) -> EventLog:
        return self._host.event_log

    @property
    def now(self) -> int:
        return self._host.block_time

    def advance_time(self, seconds: int) -> ServiceResult:
        try:
            now = self._host.advance_time(seconds)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])
        return ServiceResult(success=True, data={"block_time": now})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self, sender: str, address: str, msg: Any) -> ServiceResult:
        try:
            receipt = self._host.execute(sender, address, msg)
        except ContractError as e:
            return ServiceResult(success=False, errors=[str(e)], data={"error": e.to_dict()})
        return ServiceResult(success=True, data=self._receipt_data(receipt))

    @staticmethod
    def _receipt_data(receipt: Receipt) -> dict[str, Any]:
        data: dict[str, Any] = {
            "events": [e.event_kind.value for e in receipt.events],
            "dropped": [
                {"target": d.target, "message": d.message, "error": d.error}
                for d in receipt.dropped
            ],
        }
        if isinstance(receipt.data, dict):
            data.update(receipt.data)
        elif receipt.data is not None:
            data["result"] = receipt.data
        return data

    def _query(self, address: str, msg: Any, key: str) -> ServiceResult:
        try:
            answer = self._host.query(address, msg)
        except ContractError as e:
            return ServiceResult(success=False, errors=[str(e)], data={"error": e.to_dict()})
        return ServiceResult(success=True, data={key: answer})

    def _credential(self, account: str) -> str:
        return self._keys.get(account, "")

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def fund(self, account: str, amount: int) -> ServiceResult:
        """Mint incentivized tokens to an account (admin faucet)."""
        return self._execute(self._addresses.admin, self._addresses.inc_token, Mint(account, amount))

    def create_viewing_key(self, account: str) -> ServiceResult:
        key = self._keyring.create_key(account)
        self._keys[account] = key
        return ServiceResult(success=True, data={"account": account, "key": key})

    def token_balances(self, account: str) -> ServiceResult:
        a = self._addresses
        return ServiceResult(
            success=True,
            data={
                "inc_token": self._host.query(a.inc_token, TokenBalance(account)),
                "reward_token": self._host.query(a.reward_token, TokenBalance(account)),
            },
        )

    # ------------------------------------------------------------------
    # Staking
    # ------------------------------------------------------------------

    def deposit(self, account: str, amount: int) -> ServiceResult:
        a = self._addresses
        return self._execute(account, a.inc_token, Send(a.staking_pool, amount, DEPOSIT_MSG))

    def redeem(self, account: str, amount: Optional[int] = None) -> ServiceResult:
        return self._execute(account, self._addresses.staking_pool, Redeem(amount=amount))

    def emergency_redeem(self, account: str) -> ServiceResult:
        return self._execute(account, self._addresses.staking_pool, EmergencyRedeem())

    def stop_pool(self, sender: Optional[str] = None) -> ServiceResult:
        return self._execute(sender or self._addresses.admin, self._addresses.staking_pool, StopContract())

    def resume_pool(self, sender: Optional[str] = None) -> ServiceResult:
        return self._execute(sender or self._addresses.admin, self._addresses.staking_pool, ResumeContract())

    def staked_balance(self, account: str) -> ServiceResult:
        msg = Balance(account, self._credential(account))
        return self._query(self._addresses.staking_pool, msg, "balance")

    def pending_rewards(self, account: str) -> ServiceResult:
        msg = PendingRewards(account, self._credential(account))
        return self._query(self._addresses.staking_pool, msg, "pending_rewards")

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def create_poll(
        self,
        author: str,
        title: str,
        description: str,
        choices: Sequence[str],
        config: Optional[PollConfig] = None,
    ) -> ServiceResult:
        """Create a poll. On success data["poll"] is the new poll's address."""
        msg = NewPoll(
            metadata=PollMetadata(title=title, description=description, author=author),
            choices=tuple(choices),
            config=config,
        )
        try:
            receipt = self._host.execute(author, self._addresses.poll_factory, msg)
        except ContractError as e:
            return ServiceResult(success=False, errors=[str(e)], data={"error": e.to_dict()})
        data = self._receipt_data(receipt)
        opened = [e for e in receipt.events if e.event_kind == EventKind.POLL_OPENED]
        data["poll"] = opened[0].contract
        return ServiceResult(success=True, data=data)

    def vote(self, voter: str, poll: str, choice: int) -> ServiceResult:
        return self._execute(voter, poll, CastVote(choice=choice, credential=self._credential(voter)))

    def finalize(self, poll: str, sender: Optional[str] = None) -> ServiceResult:
        return self._execute(sender or self._addresses.admin, poll, Finalize())

    def tally(self, poll: str) -> ServiceResult:
        try:
            answer = self._host.query(poll, TallyQuery())
        except ContractError as e:
            return ServiceResult(success=False, errors=[str(e)], data={"error": e.to_dict()})
        return ServiceResult(success=True, data={"choices": answer.choices, "tally": answer.tally})

    def poll_status(self, poll: str) -> ServiceResult:
        return self._query(poll, PollStatusQuery(), "poll")

    def has_voted(self, poll: str, voter: str) -> ServiceResult:
        return self._query(poll, HasVoted(voter), "has_voted")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def polls(self) -> list[str]:
        """Addresses of every poll ever created, active or not."""
        return [addr for addr in self._host.addresses() if isinstance(self._host.contract(addr), Poll)]

    def status(self) -> dict[str, Any]:
        a = self._addresses
        host = self._host
        return {
            "block_time": host.block_time,
            "staking_pool": {
                "address": a.staking_pool,
                "total_locked": host.query(a.staking_pool, TotalLocked()),
                "is_stopped": host.query(a.staking_pool, ContractStatus())["is_stopped"],
                "subscribers": host.query(a.staking_pool, Subscribers()),
            },
            "poll_factory": {
                "address": a.poll_factory,
                "active_polls": host.query(a.poll_factory, ActivePolls()),
            },
            "polls": len(self.polls()),
            "reward_per_second": self._config.reward_per_second,
            "events": self.event_log.count,
        }

    # ------------------------------------------------------------------
    # Scenarios
    # ------------------------------------------------------------------

    def run_step(self, step: dict[str, Any]) -> ServiceResult:
        """Run one scenario step, e.g. {"op": "deposit", "account": "alice", "amount": 100}.

        Poll steps refer to polls by creation order: {"op": "vote", "poll": 1, ...}.
        """
        op = step.get("op")
        handler = self._step_handlers().get(op)
        if handler is None:
            return ServiceResult(success=False, errors=[f"Unknown scenario op: {op!r}"])
        try:
            return handler(step)
        except KeyError as e:
            return ServiceResult(success=False, errors=[f"Step {op!r} is missing field {e}"])

    def _poll_at(self, index: int) -> str:
        polls = self.polls()
        if not 1 <= index <= len(polls):
            raise KeyError(f"poll #{index}")
        return polls[index - 1]

    def _step_handlers(self) -> dict[str, Callable[[dict[str, Any]], ServiceResult]]:
        return {
            "fund": lambda s: self.fund(s["account"], int(s["amount"])),
            "viewing_key": lambda s: self.create_viewing_key(s["account"]),
            "deposit": lambda s: self.deposit(s["account"], int(s["amount"])),
            "redeem": lambda s: self.redeem(
                s["account"], None if s.get("amount") is None else int(s["amount"])
            ),
            "emergency_redeem": lambda s: self.emergency_redeem(s["account"]),
            "stop": lambda s: self.stop_pool(s.get("sender")),
            "resume": lambda s: self.resume_pool(s.get("sender")),
            "advance": lambda s: self.advance_time(int(s["seconds"])),
            "create_poll": lambda s: self.create_poll(
                s["author"],
                s["title"],
                s["description"],
                s["choices"],
                PollConfig(**s["config"]) if s.get("config") else None,
            ),
            "vote": lambda s: self.vote(s["voter"], self._poll_at(int(s["poll"])), int(s["choice"])),
            "finalize": lambda s: self.finalize(self._poll_at(int(s["poll"])), s.get("sender")),
            "tally": lambda s: self.tally(self._poll_at(int(s["poll"]))),
            "pending_rewards": lambda s: self.pending_rewards(s["account"]),
            "balances": lambda s: self.token_balances(s["account"]),
        }

    def run_scenario(self, steps: Sequence[dict[str, Any]]) -> list[ServiceResult]:
        """Run steps in order. A step may set "expect_failure": true."""
        results = []
        for number, step in enumerate(steps, 1):
            result = self.run_step(step)
            expected = not step.get("expect_failure", False)
            if result.success != expected:
                log.warning("scenario_step_unexpected", step=number, op=step.get("op"), errors=result.errors)
            results.append(result)
        return results
