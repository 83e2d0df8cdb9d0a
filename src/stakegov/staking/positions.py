"""Position store — per-participant stake and reward debt.

Settlement order is fixed:
1. Compute pending reward against the current accumulator.
2. Resize the position (deposit adds, withdrawal subtracts).
3. Re-baseline debt at the new size.
4. Move total_staked by the same delta.

The store is pure accounting. It reports the pending reward in the
returned Settlement; turning that into a token transfer is the pool's job.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

import structlog

from stakegov.errors import InsufficientStake
from stakegov.models.staking import Position
from stakegov.staking.ledger import RewardLedger

log = structlog.get_logger(__name__)


class StakeDirection(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class Settlement:
    """Outcome of settling and resizing one position."""
    participant: str
    direction: StakeDirection
    delta: int
    pending_reward: int
    locked: int


class PositionStore:
    """Owns the participant → Position map of one staking pool.

    Usage:
        store = PositionStore(state.positions, RewardLedger(state.reward_pool))
        settlement = store.settle_and_resize("alice", 100, StakeDirection.DEPOSIT)
        settlement = store.settle_and_resize("alice", None, StakeDirection.WITHDRAW)
    """

    def __init__(self, positions: dict[str, Position], ledger: RewardLedger) -> None:
        self._positions = positions
        self._ledger = ledger

    def get(self, participant: str) -> Position:
        """Return the participant's position, or a zero position if absent."""
        position = self._positions.get(participant)
        if position is None:
            return Position()
        return Position(locked=position.locked, debt=position.debt)

    def pending(self, participant: str, acc_reward_per_share: Optional[int] = None) -> int:
        """Pending reward at the given (default: current) accumulator."""
        position = self.get(participant)
        if acc_reward_per_share is None:
            return self._ledger.pending(position.locked, position.debt)
        return self._ledger.accrued(position.locked, acc_reward_per_share) - position.debt

    def total_locked(self) -> int:
        return sum(p.locked for p in self._positions.values())

    def settle_and_resize(
        self,
        participant: str,
        delta: Optional[int],
        direction: StakeDirection,
    ) -> Settlement:
        """Settle pending rewards and resize the position.

        A withdrawal with delta=None withdraws everything locked.

        Raises:
            InsufficientStake: If a withdrawal exceeds the locked amount.
            ValueError: If delta is negative, or None for a deposit.
        """
        position = self._positions.get(participant) or Position()

        if delta is None:
            if direction == StakeDirection.DEPOSIT:
                raise ValueError("Deposit amount is required")
            delta = position.locked
        if delta < 0:
            raise ValueError(f"Stake delta must be non-negative, got {delta}")

        if direction == StakeDirection.WITHDRAW and delta > position.locked:
            raise InsufficientStake(participant, position.locked, delta)

        pending = self._ledger.pending(position.locked, position.debt)

        if direction == StakeDirection.DEPOSIT:
            position.locked += delta
            self._ledger.add_stake(delta)
        else:
            position.locked -= delta
            self._ledger.remove_stake(delta)

        position.debt = self._ledger.accrued(position.locked)
        self._positions[participant] = position

        log.info(
            "position_settled",
            participant=participant,
            direction=direction.value,
            delta=delta,
            pending_reward=pending,
            locked=position.locked,
            debt=position.debt,
        )
        return Settlement(
            participant=participant,
            direction=direction,
            delta=delta,
            pending_reward=pending,
            locked=position.locked,
        )

    def emergency_exit(self, participant: str) -> int:
        """Zero the position without paying rewards. Returns the amount unlocked.

        Destructive: pending rewards are forfeited. Circuit-breaker use only.
        """
        position = self._positions.get(participant) or Position()
        unlocked = position.locked
        self._ledger.remove_stake(unlocked)
        self._positions[participant] = Position()
        log.warning("emergency_exit", participant=participant, unlocked=unlocked)
        return unlocked
