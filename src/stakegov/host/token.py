"""Reference fungible token — balances, transfers, sends and minting.

Send moves the funds first and then delivers Receive to the recipient
contract. If the recipient rejects it, the transaction (and with it the
transfer) is rolled back by the host.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

import structlog

from stakegov.errors import InsufficientBalance, Unauthorized, UnsupportedMessage
from stakegov.models.execution import Execute, ExecutionContext, Response
from stakegov.models.staking import Receive
from stakegov.models.token import Mint, Send, TokenBalance, TokenState, TokenSupply, Transfer
from stakegov.persistence.event_log import EventKind

log = structlog.get_logger(__name__)


class ReferenceToken:
    """Minimal token contract used by the host for both tokens of a deployment."""

    def __init__(
        self,
        symbol: str,
        minters: Sequence[str] = (),
        initial_balances: Optional[Mapping[str, int]] = None,
    ) -> None:
        balances = dict(initial_balances or {})
        self.state = TokenState(
            symbol=symbol,
            minters=list(minters),
            balances=balances,
            total_supply=sum(balances.values()),
        )

    def balance_of(self, account: str) -> int:
        return self.state.balances.get(account, 0)

    def _move(self, source: str, target: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Transfer amount must be non-negative, got {amount}")
        balance = self.balance_of(source)
        if balance < amount:
            raise InsufficientBalance(source, balance, amount)
        self.state.balances[source] = balance - amount
        self.state.balances[target] = self.balance_of(target) + amount

    def handle(self, ctx: ExecutionContext, msg: Any) -> Response:
        if isinstance(msg, Transfer):
            self._move(ctx.sender, msg.recipient, msg.amount)
            return Response().add_event(
                EventKind.TOKENS_TRANSFERRED,
                token=self.state.symbol,
                source=ctx.sender,
                recipient=msg.recipient,
                amount=msg.amount,
            )

        if isinstance(msg, Send):
            self._move(ctx.sender, msg.recipient, msg.amount)
            return (
                Response()
                .add_event(
                    EventKind.TOKENS_TRANSFERRED,
                    token=self.state.symbol,
                    source=ctx.sender,
                    recipient=msg.recipient,
                    amount=msg.amount,
                )
                .add_instruction(
                    Execute(
                        contract_address=msg.recipient,
                        msg=Receive(
                            sender=ctx.sender,
                            from_address=ctx.sender,
                            amount=msg.amount,
                            msg=msg.msg,
                        ),
                    )
                )
            )

        if isinstance(msg, Mint):
            if ctx.sender not in self.state.minters:
                raise Unauthorized(ctx.sender, "Mint", f"{ctx.sender} is not a minter of {self.state.symbol}")
            if msg.amount < 0:
                raise ValueError(f"Mint amount must be non-negative, got {msg.amount}")
            self.state.balances[msg.recipient] = self.balance_of(msg.recipient) + msg.amount
            self.state.total_supply += msg.amount
            log.debug("tokens_minted", token=self.state.symbol, recipient=msg.recipient, amount=msg.amount)
            return Response().add_event(
                EventKind.TOKENS_MINTED,
                token=self.state.symbol,
                recipient=msg.recipient,
                amount=msg.amount,
            )

        raise UnsupportedMessage(f"token does not handle {type(msg).__name__}")

    def query(self, ctx: ExecutionContext, msg: Any) -> Any:
        if isinstance(msg, TokenBalance):
            return self.balance_of(msg.address)
        if isinstance(msg, TokenSupply):
            return self.state.total_supply
        raise UnsupportedMessage(f"token does not answer {type(msg).__name__}")
