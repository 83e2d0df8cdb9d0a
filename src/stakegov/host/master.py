"""Reference master coordinator — per-second reward emission split by weight.

A pool's share since its last allocation is

    reward_per_second * elapsed * weight // total_weight

UpdateAllocation mints that share to the pool and calls the pool back
with NotifyAllocation, echoing the pool's hook untouched. Changing weights
first settles every weighted pool at the old weights.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog

from stakegov.config import require_admin
from stakegov.errors import Unauthorized, UnsupportedMessage
from stakegov.models.execution import Execute, ExecutionContext, Response
from stakegov.models.staking import NotifyAllocation
from stakegov.models.token import MasterState, Mint, PendingAllocation, SetWeights, UpdateAllocation
from stakegov.persistence.event_log import EventKind

log = structlog.get_logger(__name__)


class ReferenceMaster:
    """Master coordinator contract. Must be a minter of the reward token."""

    def __init__(self, admin: str, reward_token: str, reward_per_second: int) -> None:
        if reward_per_second < 0:
            raise ValueError(f"reward_per_second must be >= 0, got {reward_per_second}")
        self.state = MasterState(
            admin=admin,
            reward_token=reward_token,
            reward_per_second=reward_per_second,
        )

    def pending(self, pool: str, now: int) -> int:
        weight = self.state.weights.get(pool, 0)
        total_weight = sum(self.state.weights.values())
        if weight == 0 or total_weight == 0:
            return 0
        elapsed = max(0, now - self.state.last_update.get(pool, now))
        return self.state.reward_per_second * elapsed * weight // total_weight

    def _allocate(self, response: Response, pool: str, now: int, hook: Optional[bytes]) -> int:
        amount = self.pending(pool, now)
        self.state.last_update[pool] = now
        if amount > 0:
            response.add_instruction(Execute(self.state.reward_token, Mint(pool, amount)))
        response.add_instruction(Execute(pool, NotifyAllocation(amount=amount, hook=hook)))
        response.add_event(EventKind.ALLOCATION_COMPUTED, pool=pool, amount=amount)
        log.debug("allocation_computed", pool=pool, amount=amount)
        return amount

    def handle(self, ctx: ExecutionContext, msg: Any) -> Response:
        if isinstance(msg, UpdateAllocation):
            if ctx.sender != msg.pool:
                raise Unauthorized(ctx.sender, "UpdateAllocation", "a pool may only update its own allocation")
            response = Response()
            amount = self._allocate(response, msg.pool, ctx.block_time, msg.hook)
            response.data = {"allocated": amount}
            return response

        if isinstance(msg, SetWeights):
            require_admin(self.state.admin, ctx.sender, "SetWeights")
            response = Response()
            for pool in [p for p, w in self.state.weights.items() if w > 0]:
                self._allocate(response, pool, ctx.block_time, None)
            for pool, weight in msg.weights:
                if weight < 0:
                    raise ValueError(f"Weight must be non-negative, got {weight} for {pool}")
                self.state.weights[pool] = weight
                self.state.last_update[pool] = ctx.block_time
            return response.add_event(EventKind.WEIGHTS_SET, weights=dict(msg.weights))

        raise UnsupportedMessage(f"master does not handle {type(msg).__name__}")

    def query(self, ctx: ExecutionContext, msg: Any) -> Any:
        if isinstance(msg, PendingAllocation):
            return self.pending(msg.pool, msg.at_time)
        raise UnsupportedMessage(f"master does not answer {type(msg).__name__}")
