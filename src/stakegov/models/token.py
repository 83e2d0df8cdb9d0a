"""Token and master-coordinator message surface.

These are the external collaborators the staking pool talks to: a
fungible token (transfers, sends with a receive callback, minting) and
the master coordinator that decides how much reward each pool gets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Transfer:
    recipient: str
    amount: int


@dataclass(frozen=True)
class Send:
    """Transfer to a contract and invoke its Receive handler with `msg`."""
    recipient: str
    amount: int
    msg: Optional[bytes] = None


@dataclass(frozen=True)
class Mint:
    recipient: str
    amount: int


@dataclass(frozen=True)
class TokenBalance:
    address: str


@dataclass(frozen=True)
class TokenSupply:
    pass


@dataclass
class TokenState:
    symbol: str
    minters: list[str] = field(default_factory=list)
    balances: dict[str, int] = field(default_factory=dict)
    total_supply: int = 0


# ---------------------------------------------------------------------------
# Master coordinator
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UpdateAllocation:
    """Pool → master: allocate my share now, then call me back with `hook`."""
    pool: str
    hook: Optional[bytes] = None


@dataclass(frozen=True)
class SetWeights:
    """Admin: pool address → allocation weight."""
    weights: tuple[tuple[str, int], ...]


@dataclass(frozen=True)
class PendingAllocation:
    """Reward the master would allocate to `pool` if asked at `at_time`."""
    pool: str
    at_time: int


@dataclass
class MasterState:
    admin: str
    reward_token: str
    reward_per_second: int
    weights: dict[str, int] = field(default_factory=dict)
    last_update: dict[str, int] = field(default_factory=dict)
