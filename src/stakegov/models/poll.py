"""Governance models — polls, votes, tallies, and the factory/poll message surface.

A poll is created by the poll factory, registers itself back with the
factory through a challenge-response handshake, and then receives live
voting-power updates routed from the staking pool.

Poll lifecycle (terminal once ended):
    OPEN → ENDED_VALID
    OPEN → ENDED_INVALID

Invariant: sum(tally) == sum(vote.voting_power for every stored vote).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from stakegov.config import FactoryConfig, PollDefaults
from stakegov.models.execution import Execute


class PollStatus(str, enum.Enum):
    """Lifecycle state of a poll."""
    OPEN = "open"
    ENDED_VALID = "ended_valid"
    ENDED_INVALID = "ended_invalid"


@dataclass(frozen=True)
class PollConfig:
    """Poll parameters supplied at creation.

    duration is in seconds; quorum and min_threshold are whole
    percentages (0..100).
    """
    duration: int
    quorum: int
    min_threshold: int

    @staticmethod
    def from_defaults(defaults: PollDefaults) -> PollConfig:
        return PollConfig(
            duration=defaults.duration,
            quorum=defaults.quorum,
            min_threshold=defaults.min_threshold,
        )


@dataclass(frozen=True)
class PollMetadata:
    title: str
    description: str
    author: str


@dataclass
class StoredPollConfig:
    """What a poll persists about itself. `valid` is meaningful once `ended`."""
    end_timestamp: int
    quorum: int
    min_threshold: int
    choices: list[str]
    ended: bool = False
    valid: bool = False

    @property
    def status(self) -> PollStatus:
        if not self.ended:
            return PollStatus.OPEN
        return PollStatus.ENDED_VALID if self.valid else PollStatus.ENDED_INVALID


@dataclass(frozen=True)
class Vote:
    """A voter's standing vote. One per voter; a revote replaces it."""
    choice: int
    voting_power: int


@dataclass(frozen=True)
class ActivePoll:
    address: str
    end_time: int


@dataclass(frozen=True)
class FinalizeAnswer:
    valid: bool
    choices: list[str]
    tally: list[int]


# ---------------------------------------------------------------------------
# Poll factory handle messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NewPoll:
    metadata: PollMetadata
    choices: tuple[str, ...]
    config: Optional[PollConfig] = None


@dataclass(frozen=True)
class RegisterForUpdates:
    """Sent by a freshly created poll: the pre-image it was given, and its end time."""
    challenge: str
    end_time: int


@dataclass(frozen=True)
class UpdateVotingPower:
    """New stake weight of `voter`. Staking pool → factory → every active poll."""
    voter: str
    new_power: int


@dataclass(frozen=True)
class UpdatePollCode:
    code_id: int


@dataclass(frozen=True)
class UpdateDefaultPollConfig:
    duration: Optional[int] = None
    quorum: Optional[int] = None
    min_threshold: Optional[int] = None


# ---------------------------------------------------------------------------
# Poll messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PollInit:
    metadata: PollMetadata
    config: PollConfig
    choices: tuple[str, ...]
    staking_pool: str
    init_hook: Optional[Execute] = None


@dataclass(frozen=True)
class CastVote:
    choice: int
    credential: str


@dataclass(frozen=True)
class Finalize:
    pass


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Choices:
    pass


@dataclass(frozen=True)
class HasVoted:
    voter: str


@dataclass(frozen=True)
class TallyQuery:
    pass


@dataclass(frozen=True)
class VoteQuery:
    voter: str
    credential: str


@dataclass(frozen=True)
class PollStatusQuery:
    pass


@dataclass(frozen=True)
class MetadataQuery:
    pass


@dataclass(frozen=True)
class ActivePolls:
    pass


@dataclass(frozen=True)
class DefaultPollConfig:
    pass


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------

@dataclass
class FactoryState:
    config: FactoryConfig
    defaults: PollDefaults = field(default_factory=PollDefaults)
    # sha256 hex of the pre-image handed to the poll being created
    challenge: Optional[str] = None
    active_polls: list[ActivePoll] = field(default_factory=list)


@dataclass
class PollState:
    owner: str
    staking_pool: str
    metadata: PollMetadata
    config: StoredPollConfig
    tally: list[int] = field(default_factory=list)
    votes: dict[str, Vote] = field(default_factory=dict)
