"""Subscriber fan-out — broadcast a participant's new stake weight.

After every settled stake change the pool sends one UpdateVotingPower
message per subscriber, in subscription order. Delivery is best-effort:
a subscriber that rejects the update does not undo the stake change, and
nothing waits for an acknowledgment. Receivers resynchronize lazily.
"""

from __future__ import annotations

from typing import Iterable

from stakegov.models.execution import Execute
from stakegov.models.poll import UpdateVotingPower
from stakegov.models.staking import ContractRef


class SubscriberFanout:
    """Maintains the ordered subscriber list and builds notifications."""

    def __init__(self, subscribers: list[ContractRef]) -> None:
        self._subscribers = subscribers

    @property
    def subscribers(self) -> list[ContractRef]:
        return list(self._subscribers)

    def add(self, contracts: Iterable[ContractRef]) -> list[ContractRef]:
        """Append subscribers, skipping addresses already subscribed."""
        added: list[ContractRef] = []
        known = {s.address for s in self._subscribers}
        for contract in contracts:
            if contract.address in known:
                continue
            self._subscribers.append(contract)
            known.add(contract.address)
            added.append(contract)
        return added

    def remove(self, addresses: Iterable[str]) -> list[ContractRef]:
        drop = set(addresses)
        removed = [s for s in self._subscribers if s.address in drop]
        self._subscribers[:] = [s for s in self._subscribers if s.address not in drop]
        return removed

    def notifications(self, participant: str, new_weight: int) -> list[Execute]:
        msg = UpdateVotingPower(voter=participant, new_power=new_weight)
        return [
            Execute(contract_address=s.address, msg=msg, best_effort=True)
            for s in self._subscribers
        ]
