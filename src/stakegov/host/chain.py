"""In-memory execution host — message delivery with transactional rollback.

The host owns every deployed contract, the block clock and the event log.
A transaction is one external message plus every instruction it triggers:

- Instructions run depth-first, in order, after the handler that emitted
  them returns.
- Any failure of the handler or of a regular instruction restores every
  contract (including ones instantiated during the transaction) to its
  state before the transaction, and re-raises.
- A failing best-effort instruction rolls back only its own subtree. The
  failure is logged and reported in the receipt; the transaction goes on.
- Contract events reach the event log only when the transaction commits.

A contract is any object with a mutable `state` attribute,
`handle(ctx, msg) -> Response` and `query(ctx, msg)`. Instantiable code is
registered as a callable `(ctx, init_msg) -> (contract, Response)`.
"""

from __future__ import annotations

import copy
import hashlib
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

from stakegov.errors import UnknownContract
from stakegov.models.execution import (
    ContractEvent,
    Execute,
    ExecutionContext,
    Instantiate,
    Instruction,
    Response,
)
from stakegov.persistence.event_log import EventLog, EventRecord

log = structlog.get_logger(__name__)

CodeFactory = Callable[[ExecutionContext, Any], "tuple[Any, Response]"]


@dataclass(frozen=True)
class DroppedInstruction:
    """A best-effort instruction that failed and was rolled back on its own."""
    caller: str
    target: str
    message: str
    error: dict[str, Any]


@dataclass
class Receipt:
    """Outcome of a committed transaction."""
    data: Any = None
    events: list[EventRecord] = field(default_factory=list)
    dropped: list[DroppedInstruction] = field(default_factory=list)


@dataclass
class _Snapshot:
    states: dict[str, Any]
    labels: dict[str, str]


@dataclass
class _Transaction:
    events: list[tuple[str, str, ContractEvent]] = field(default_factory=list)
    dropped: list[DroppedInstruction] = field(default_factory=list)


class Host:
    """Deploys contracts, advances time, and executes transactions.

    Usage:
        host = Host(block_time=1_700_000_000)
        poll_code = host.register_code(Poll.instantiate)
        host.deploy(pool, "staking")
        receipt = host.execute("alice", "staking", Redeem())
        host.advance_time(3600)
    """

    def __init__(self, block_time: int = 0, event_log: Optional[EventLog] = None) -> None:
        self.block_time = block_time
        self.event_log = event_log if event_log is not None else EventLog()
        self._contracts: dict[str, Any] = {}
        self._labels: dict[str, str] = {}
        self._codes: dict[int, CodeFactory] = {}

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def register_code(self, factory: CodeFactory) -> int:
        code_id = len(self._codes) + 1
        self._codes[code_id] = factory
        return code_id

    def deploy(self, contract: Any, address: str) -> str:
        if address in self._contracts:
            raise ValueError(f"Address already in use: {address}")
        self._contracts[address] = contract
        log.debug("contract_deployed", address=address, kind=type(contract).__name__)
        return address

    def contract(self, address: str) -> Any:
        contract = self._contracts.get(address)
        if contract is None:
            raise UnknownContract(f"no contract at {address}")
        return contract

    def addresses(self) -> list[str]:
        return list(self._contracts)

    def label_of(self, address: str) -> Optional[str]:
        return self._labels.get(address)

    def advance_time(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"Time cannot move backwards ({seconds}s)")
        self.block_time += seconds
        return self.block_time

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, address: str, msg: Any) -> Any:
        """Read-only call. Contracts may query each other through ctx.querier."""
        contract = self.contract(address)
        ctx = ExecutionContext(
            sender="",
            contract_address=address,
            block_time=self.block_time,
            querier=self.query,
        )
        return contract.query(ctx, msg)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def execute(self, sender: str, address: str, msg: Any) -> Receipt:
        """Run one transaction. On failure nothing it did survives."""
        snapshot = self._snapshot()
        tx = _Transaction()
        try:
            response = self._dispatch(sender, address, msg, tx)
        except Exception as exc:
            self._restore(snapshot)
            log.warning(
                "transaction_rolled_back",
                sender=sender,
                contract=address,
                message=type(msg).__name__,
                error=str(exc),
            )
            raise

        records = [self._commit_event(*entry) for entry in tx.events]
        log.info(
            "transaction_committed",
            sender=sender,
            contract=address,
            message=type(msg).__name__,
            events=len(records),
            dropped=len(tx.dropped),
        )
        return Receipt(data=response.data, events=records, dropped=tx.dropped)

    def _dispatch(self, sender: str, address: str, msg: Any, tx: _Transaction) -> Response:
        contract = self.contract(address)
        ctx = ExecutionContext(
            sender=sender,
            contract_address=address,
            block_time=self.block_time,
            querier=self.query,
        )
        log.debug("dispatch", sender=sender, contract=address, message=type(msg).__name__)
        response = contract.handle(ctx, msg)
        tx.events.extend((address, sender, event) for event in response.events)
        self._run(address, response.instructions, tx)
        return response

    def _run(self, caller: str, instructions: list[Instruction], tx: _Transaction) -> None:
        for instruction in instructions:
            if isinstance(instruction, Instantiate):
                self._instantiate(caller, instruction, tx)
            elif isinstance(instruction, Execute) and instruction.best_effort:
                self._run_best_effort(caller, instruction, tx)
            elif isinstance(instruction, Execute):
                self._dispatch(caller, instruction.contract_address, instruction.msg, tx)
            else:
                raise TypeError(f"Unknown instruction: {type(instruction).__name__}")

    def _run_best_effort(self, caller: str, instruction: Execute, tx: _Transaction) -> None:
        snapshot = self._snapshot()
        events_mark = len(tx.events)
        dropped_mark = len(tx.dropped)
        try:
            self._dispatch(caller, instruction.contract_address, instruction.msg, tx)
        except ValueError as exc:
            self._restore(snapshot)
            del tx.events[events_mark:]
            del tx.dropped[dropped_mark:]
            error = exc.to_dict() if hasattr(exc, "to_dict") else {"message": str(exc)}
            tx.dropped.append(
                DroppedInstruction(
                    caller=caller,
                    target=instruction.contract_address,
                    message=type(instruction.msg).__name__,
                    error=error,
                )
            )
            log.warning(
                "best_effort_instruction_dropped",
                caller=caller,
                target=instruction.contract_address,
                message=type(instruction.msg).__name__,
                error=str(exc),
            )

    def _instantiate(self, caller: str, instruction: Instantiate, tx: _Transaction) -> str:
        factory = self._codes.get(instruction.code_id)
        if factory is None:
            raise UnknownContract(f"no code registered under id {instruction.code_id}")

        address = _derive_address(caller, instruction.label)
        if address in self._contracts:
            raise ValueError(f"Label {instruction.label!r} already used by {caller}")

        ctx = ExecutionContext(
            sender=caller,
            contract_address=address,
            block_time=self.block_time,
            querier=self.query,
        )
        contract, response = factory(ctx, instruction.msg)
        self._contracts[address] = contract
        self._labels[address] = instruction.label
        log.info("contract_instantiated", address=address, label=instruction.label, creator=caller)

        tx.events.extend((address, caller, event) for event in response.events)
        self._run(address, response.instructions, tx)
        return address

    # ------------------------------------------------------------------
    # State snapshots
    # ------------------------------------------------------------------

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            states={addr: copy.deepcopy(c.state) for addr, c in self._contracts.items()},
            labels=dict(self._labels),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        for address in [a for a in self._contracts if a not in snapshot.states]:
            del self._contracts[address]
        for address, state in snapshot.states.items():
            self._contracts[address].state = state
        self._labels = snapshot.labels

    def _commit_event(self, contract: str, sender: str, event: ContractEvent) -> EventRecord:
        record = EventRecord.create(
            event_id=f"evt-{self.event_log.count + 1:08d}",
            event_kind=event.kind,
            contract=contract,
            sender=sender,
            payload=dict(event.attributes),
            block_time=self.block_time,
        )
        self.event_log.append(record)
        return record


def _derive_address(creator: str, label: str) -> str:
    digest = hashlib.sha256(f"{creator}/{label}".encode("utf-8")).hexdigest()
    return f"contract_{digest[:20]}"
