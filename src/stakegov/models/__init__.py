"""Core data models: execution context, staking records, polls and tokens."""

from stakegov.models.execution import (
    ContractEvent,
    Execute,
    ExecutionContext,
    Instantiate,
    Response,
)
from stakegov.models.poll import (
    ActivePoll,
    FinalizeAnswer,
    PollConfig,
    PollMetadata,
    PollState,
    PollStatus,
    StoredPollConfig,
    Vote,
)
from stakegov.models.staking import (
    REWARD_SCALE,
    ContractRef,
    Position,
    RewardPool,
    StakingState,
)

__all__ = [
    "ActivePoll",
    "ContractEvent",
    "ContractRef",
    "Execute",
    "ExecutionContext",
    "FinalizeAnswer",
    "Instantiate",
    "PollConfig",
    "PollMetadata",
    "PollState",
    "PollStatus",
    "Position",
    "REWARD_SCALE",
    "Response",
    "RewardPool",
    "StakingState",
    "StoredPollConfig",
    "Vote",
]
