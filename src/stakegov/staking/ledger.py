"""Reward ledger — the accumulator behind O(1) reward distribution.

Instead of crediting every position on every allocation, the ledger keeps
one cumulative number: reward earned per staked unit since inception,
scaled by REWARD_SCALE. A position's pending reward is then

    locked * acc_reward_per_share // REWARD_SCALE - debt

where debt re-baselines the position at each settlement.

Rewards allocated while nothing is staked cannot be attributed to anyone.
They accumulate in `residue` and are folded into the accumulator by the
next allocation that finds stake in the pool, which hands them to whoever
staked first into the empty pool.

Integer floor division throughout. The rounding dust stays in the pool.
"""

from __future__ import annotations

import structlog

from stakegov.models.staking import REWARD_SCALE, RewardPool

log = structlog.get_logger(__name__)


class RewardLedger:
    """Mutates a RewardPool through allocation and stake accounting.

    Usage:
        ledger = RewardLedger(state.reward_pool)
        ledger.allocate(500)
        pending = ledger.pending(position.locked, position.debt)
    """

    def __init__(self, pool: RewardPool) -> None:
        self._pool = pool

    @property
    def pool(self) -> RewardPool:
        return self._pool

    @property
    def acc_reward_per_share(self) -> int:
        return self._pool.acc_reward_per_share

    @property
    def total_staked(self) -> int:
        return self._pool.total_staked

    def allocate(self, newly_allocated: int) -> RewardPool:
        """Account for newly allocated rewards.

        Zero is a no-op. An empty pool parks the amount in residue.
        Otherwise amount and residue are spread over total_staked.
        """
        if newly_allocated < 0:
            raise ValueError(f"Allocation must be non-negative, got {newly_allocated}")
        if newly_allocated == 0:
            return self._pool

        pool = self._pool
        if pool.total_staked == 0:
            pool.residue += newly_allocated
            log.info("allocation_deferred", amount=newly_allocated, residue=pool.residue)
            return pool

        pool.acc_reward_per_share += (
            (newly_allocated + pool.residue) * REWARD_SCALE // pool.total_staked
        )
        log.info(
            "allocation_applied",
            amount=newly_allocated,
            residue_consumed=pool.residue,
            acc_reward_per_share=pool.acc_reward_per_share,
        )
        pool.residue = 0
        return pool

    def projected_accumulator(self, extra: int) -> int:
        """Accumulator value if `extra` were allocated now. Read-only."""
        pool = self._pool
        if pool.total_staked == 0:
            return pool.acc_reward_per_share
        return pool.acc_reward_per_share + (
            (extra + pool.residue) * REWARD_SCALE // pool.total_staked
        )

    def accrued(self, locked: int, acc_reward_per_share: int | None = None) -> int:
        """Reward implied by `locked` at the given (default: current) accumulator."""
        acc = self._pool.acc_reward_per_share if acc_reward_per_share is None else acc_reward_per_share
        return locked * acc // REWARD_SCALE

    def pending(self, locked: int, debt: int) -> int:
        """Unsettled reward of a position at the current accumulator."""
        owed = self.accrued(locked)
        if owed < debt:
            raise ValueError(
                f"Position debt {debt} exceeds accrued reward {owed}; ledger corrupted"
            )
        return owed - debt

    def add_stake(self, amount: int) -> None:
        self._pool.total_staked += amount

    def remove_stake(self, amount: int) -> None:
        if amount > self._pool.total_staked:
            raise ValueError(
                f"Cannot remove {amount} from total stake {self._pool.total_staked}"
            )
        self._pool.total_staked -= amount
