"""Staking models — reward pool, positions, and the staking pool message surface.

All amounts are non-negative Python ints in the token's smallest unit.
No floats anywhere in reward accounting.

Invariants enforced by the staking subsystem:
- acc_reward_per_share never decreases.
- For every position, locked * acc_reward_per_share // REWARD_SCALE >= debt
  after settlement.
- With no allocation in between, sum(position.locked) == total_staked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from stakegov.config import StakingConfig


# Fixed-point scale of acc_reward_per_share (10^18)
REWARD_SCALE = 10**18


@dataclass
class RewardPool:
    """Global reward accounting for one staking pool.

    residue holds rewards allocated while nothing was staked; it is folded
    into the accumulator on the next allocation that finds a non-empty pool.
    """
    residue: int = 0
    total_staked: int = 0
    acc_reward_per_share: int = 0


@dataclass
class Position:
    """A participant's stake and reward debt."""
    locked: int = 0
    debt: int = 0


@dataclass(frozen=True)
class ContractRef:
    """Address of a contract this pool talks to."""
    address: str


# ---------------------------------------------------------------------------
# Staking pool handle messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Receive:
    """Token callback: `sender` moved `amount` into the pool with `msg` attached."""
    sender: str
    from_address: str
    amount: int
    msg: Optional[bytes] = None


@dataclass(frozen=True)
class Redeem:
    """Withdraw `amount` of staked tokens (everything when None)."""
    amount: Optional[int] = None


@dataclass(frozen=True)
class EmergencyRedeem:
    """Withdraw everything and forfeit unclaimed rewards. Not reversible."""


@dataclass(frozen=True)
class NotifyAllocation:
    """Master callback: `amount` was allocated; run `hook` afterwards."""
    amount: int
    hook: Optional[bytes] = None


@dataclass(frozen=True)
class AddSubscribers:
    contracts: tuple[ContractRef, ...]


@dataclass(frozen=True)
class RemoveSubscribers:
    addresses: tuple[str, ...]


@dataclass(frozen=True)
class StopContract:
    pass


@dataclass(frozen=True)
class ResumeContract:
    pass


@dataclass(frozen=True)
class ChangeAdmin:
    address: str


# Payload a depositor attaches to the token Send that funds the pool
DEPOSIT_MSG = b'{"deposit":{}}'


# ---------------------------------------------------------------------------
# Staking pool queries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TotalLocked:
    pass


@dataclass(frozen=True)
class PendingRewards:
    address: str
    credential: str


@dataclass(frozen=True)
class Balance:
    address: str
    credential: str


@dataclass(frozen=True)
class ContractStatus:
    pass


@dataclass(frozen=True)
class Subscribers:
    pass


@dataclass(frozen=True)
class RewardToken:
    pass


@dataclass(frozen=True)
class IncentivizedToken:
    pass


@dataclass
class StakingState:
    """Everything a staking pool persists between invocations."""
    config: StakingConfig
    reward_pool: RewardPool = field(default_factory=RewardPool)
    positions: dict[str, Position] = field(default_factory=dict)
    subscribers: list[ContractRef] = field(default_factory=list)
