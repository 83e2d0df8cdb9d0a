"""Governance — poll factory, polls, and the stake-weighted tally engine."""

from stakegov.governance.poll import Poll
from stakegov.governance.registry import PollFactory
from stakegov.governance.tally import TallyEngine

__all__ = ["Poll", "PollFactory", "TallyEngine"]
