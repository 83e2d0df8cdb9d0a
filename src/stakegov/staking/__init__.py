"""Staking — reward accumulator, positions, allocation protocol and fan-out."""

from stakegov.staking.fanout import SubscriberFanout
from stakegov.staking.ledger import RewardLedger
from stakegov.staking.pool import StakingPool
from stakegov.staking.positions import PositionStore, StakeDirection

__all__ = [
    "PositionStore",
    "RewardLedger",
    "StakeDirection",
    "StakingPool",
    "SubscriberFanout",
]
