"""Conservation invariants over a live deployment.

Checks (each violation is reported as one message):
- sum(position.locked) == total_staked in the staking pool.
- Every position's accrued reward covers its debt.
- The pool holds exactly total_staked incentivized tokens.
- The pool's reward-token balance covers every position's pending reward.
- Every poll's tally sums to the voting power of its stored votes, and
  has one slot per choice.
"""

from __future__ import annotations

from typing import Any, Sequence

from stakegov.models.token import TokenBalance
from stakegov.service import StakeGovService
from stakegov.staking.ledger import RewardLedger


# Exercises deposits into an empty pool, residue, revotes, resync and finalize.
DEFAULT_SCENARIO: list[dict[str, Any]] = [
    {"op": "fund", "account": "alice", "amount": 1_000},
    {"op": "fund", "account": "bob", "amount": 1_000},
    {"op": "viewing_key", "account": "alice"},
    {"op": "viewing_key", "account": "bob"},
    {"op": "advance", "seconds": 10},
    {"op": "deposit", "account": "alice", "amount": 100},
    {"op": "advance", "seconds": 5},
    {"op": "deposit", "account": "bob", "amount": 300},
    {
        "op": "create_poll",
        "author": "alice",
        "title": "Treasury",
        "description": "Fund the audit",
        "choices": ["yes", "no"],
        "config": {"duration": 3_600, "quorum": 34, "min_threshold": 0},
    },
    {"op": "vote", "voter": "alice", "poll": 1, "choice": 0},
    {"op": "vote", "voter": "bob", "poll": 1, "choice": 1},
    {"op": "vote", "voter": "alice", "poll": 1, "choice": 1},
    {"op": "advance", "seconds": 60},
    {"op": "deposit", "account": "alice", "amount": 50},
    {"op": "redeem", "account": "bob", "amount": 100},
    {"op": "finalize", "poll": 1, "expect_failure": True},
    {"op": "advance", "seconds": 3_600},
    {"op": "finalize", "poll": 1},
    {"op": "tally", "poll": 1},
    {"op": "redeem", "account": "alice"},
]


def check_service(service: StakeGovService) -> list[str]:
    """Return every invariant violation in the service's current state."""
    errors: list[str] = []
    host = service.host
    a = service.addresses
    pool = host.contract(a.staking_pool).state
    ledger = RewardLedger(pool.reward_pool)

    locked = sum(p.locked for p in pool.positions.values())
    if locked != pool.reward_pool.total_staked:
        errors.append(
            f"sum(locked)={locked} != total_staked={pool.reward_pool.total_staked}"
        )

    owed = 0
    for participant, position in pool.positions.items():
        accrued = ledger.accrued(position.locked)
        if accrued < position.debt:
            errors.append(f"{participant}: accrued {accrued} < debt {position.debt}")
        else:
            owed += accrued - position.debt

    held = host.query(a.inc_token, TokenBalance(a.staking_pool))
    if held != pool.reward_pool.total_staked:
        errors.append(f"pool holds {held} incentivized tokens, total_staked={pool.reward_pool.total_staked}")

    rewards = host.query(a.reward_token, TokenBalance(a.staking_pool))
    if rewards < owed:
        errors.append(f"pool reward balance {rewards} < pending rewards {owed}")

    for address in service.polls():
        state = host.contract(address).state
        if len(state.tally) != len(state.config.choices):
            errors.append(f"{address}: tally has {len(state.tally)} slots for {len(state.config.choices)} choices")
        voted = sum(v.voting_power for v in state.votes.values())
        if sum(state.tally) != voted:
            errors.append(f"{address}: sum(tally)={sum(state.tally)} != sum(votes)={voted}")

    return errors


def check(steps: Sequence[dict[str, Any]] = DEFAULT_SCENARIO, start_time: int = 1_700_000_000) -> int:
    """Replay a scenario on a fresh deployment and check invariants after every step."""
    service = StakeGovService(start_time=start_time)
    errors: list[str] = []
    for number, step in enumerate(steps, 1):
        result = service.run_step(step)
        if result.success == bool(step.get("expect_failure", False)):
            errors.append(f"step {number} ({step.get('op')}): unexpected outcome {result.errors}")
        errors.extend(f"step {number} ({step.get('op')}): {e}" for e in check_service(service))

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0
