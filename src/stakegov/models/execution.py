"""Execution models — invocation context, outbound instructions, responses.

A contract handler never calls another contract directly. It mutates its
own state and returns a Response listing the instructions the host should
run afterwards. The host runs them depth-first, in order, after the
handler returns; a handler never observes the result of its own
instructions.

Instruction kinds:
- Execute: deliver a message to a contract address.
- Instantiate: create a new contract from a registered code id.

Execute.best_effort marks fan-out notifications: when such an instruction
fails, only its own effects are rolled back and the transaction continues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from stakegov.persistence.event_log import EventKind


# Read-only cross-contract query: (contract_address, query_message) -> answer
Querier = Callable[[str, Any], Any]


@dataclass(frozen=True)
class ExecutionContext:
    """Everything a handler may know about the current invocation."""
    sender: str
    contract_address: str
    block_time: int
    querier: Querier


@dataclass(frozen=True)
class Execute:
    """Deliver msg to the contract at contract_address."""
    contract_address: str
    msg: Any
    best_effort: bool = False


@dataclass(frozen=True)
class Instantiate:
    """Create a contract from code_id; its init runs with the caller as sender."""
    code_id: int
    msg: Any
    label: str


Instruction = Union[Execute, Instantiate]


@dataclass(frozen=True)
class ContractEvent:
    """A structured event emitted by a handler, appended to the event log."""
    kind: EventKind
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class Response:
    """Result of a handler: data for the caller plus deferred instructions."""
    instructions: list[Instruction] = field(default_factory=list)
    events: list[ContractEvent] = field(default_factory=list)
    data: Optional[Any] = None

    def add_instruction(self, instruction: Instruction) -> Response:
        self.instructions.append(instruction)
        return self

    def add_event(self, kind: EventKind, **attributes: Any) -> Response:
        self.events.append(ContractEvent(kind=kind, attributes=attributes))
        return self
