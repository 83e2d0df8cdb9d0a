"""Tally engine — stake-weighted votes, live resynchronization, quorum.

One standing vote per voter. A revote subtracts the previous vote's power
from its slot before adding the new one, so at every return

    sum(tally) == sum(vote.voting_power for vote in votes)

A resync (stake changed after voting) is a revote to the same choice
with the new power. Voters who have not voted are ignored.

Finalize rules:
- Refused while now < end_timestamp (NotYetEnded), and after the poll has
  ended (AlreadyEnded).
- participation = 100 * sum(tally) // eligible_supply, with the eligible
  supply read at finalize time. A zero supply gives zero participation.
- valid = participation > quorum and max(tally) > min_threshold.

Votes are accepted until finalize runs; end_timestamp only gates finalize.
"""

from __future__ import annotations

import structlog

from stakegov.errors import AlreadyEnded, NotFinalizedOrInvalid, NotYetEnded, UnknownChoice
from stakegov.models.poll import FinalizeAnswer, PollState, Vote

log = structlog.get_logger(__name__)


class TallyEngine:
    """Vote bookkeeping over one PollState.

    Usage:
        engine = TallyEngine(state)
        engine.cast_vote("alice", 0, 40)
        engine.sync_voting_power("alice", 70)
        answer = engine.finalize(eligible_supply=100, now=end)
    """

    def __init__(self, state: PollState) -> None:
        self._state = state

    @property
    def tally(self) -> list[int]:
        return list(self._state.tally)

    def has_voted(self, voter: str) -> bool:
        return voter in self._state.votes

    def _require_open(self, action: str) -> None:
        if self._state.config.ended:
            raise AlreadyEnded(f"poll has already ended; {action} is not allowed")

    def _apply(self, voter: str, choice: int, power: int) -> None:
        previous = self._state.votes.get(voter)
        if previous is not None:
            self._state.tally[previous.choice] -= previous.voting_power
        self._state.tally[choice] += power
        self._state.votes[voter] = Vote(choice=choice, voting_power=power)

    def cast_vote(self, voter: str, choice: int, power: int) -> Vote:
        """Record (or replace) a voter's vote.

        Raises:
            AlreadyEnded: If the poll has been finalized.
            UnknownChoice: If choice is not an index into the poll's choices.
        """
        self._require_open("voting")
        if power < 0:
            raise ValueError(f"Voting power must be non-negative, got {power}")
        choice_count = len(self._state.config.choices)
        if not 0 <= choice < choice_count:
            raise UnknownChoice(choice, choice_count)

        revote = voter in self._state.votes
        self._apply(voter, choice, power)
        log.info("vote_cast", voter=voter, choice=choice, power=power, revote=revote)
        return self._state.votes[voter]

    def sync_voting_power(self, voter: str, new_power: int) -> bool:
        """Re-weight an existing vote. Returns False when the voter has not voted."""
        self._require_open("syncing voting power")
        if new_power < 0:
            raise ValueError(f"Voting power must be non-negative, got {new_power}")
        vote = self._state.votes.get(voter)
        if vote is None:
            return False
        self._apply(voter, vote.choice, new_power)
        log.info("voting_power_synced", voter=voter, old_power=vote.voting_power, new_power=new_power)
        return True

    @staticmethod
    def participation(total_votes: int, eligible_supply: int) -> int:
        """Whole-percent participation, 0 when nothing is eligible."""
        if eligible_supply <= 0:
            return 0
        return 100 * total_votes // eligible_supply

    def finalize(self, eligible_supply: int, now: int) -> FinalizeAnswer:
        """End the poll and decide validity. Terminal."""
        config = self._state.config
        if config.ended:
            raise AlreadyEnded("poll has already been finalized")
        if now < config.end_timestamp:
            raise NotYetEnded(
                f"poll ends at {config.end_timestamp}; it is {now}",
                details={"end_timestamp": config.end_timestamp, "now": now},
            )

        tally = self._state.tally
        participation = self.participation(sum(tally), eligible_supply)
        top = max(tally) if tally else 0
        config.valid = participation > config.quorum and top > config.min_threshold
        config.ended = True

        log.info(
            "poll_finalized",
            valid=config.valid,
            participation=participation,
            quorum=config.quorum,
            eligible_supply=eligible_supply,
            tally=list(tally),
        )
        return FinalizeAnswer(valid=config.valid, choices=list(config.choices), tally=list(tally))

    def final_tally(self) -> FinalizeAnswer:
        """The result of a valid, finalized poll."""
        config = self._state.config
        if not (config.ended and config.valid):
            raise NotFinalizedOrInvalid(
                "poll has not been finalized yet or did not reach quorum"
            )
        return FinalizeAnswer(valid=True, choices=list(config.choices), tally=list(self._state.tally))
