"""Configuration records for the staking pool, poll factory and deployment.

Contract configuration is explicit data carried in each contract's state
(admin address, pause flag, collaborator addresses). Admin-gated
operations check it with guard functions instead of inheriting access
control.

Deployment parameters (emission rate, default poll parameters, event log
path) are read from the environment by SystemConfig.from_env(). A .env
file in the working directory is honoured.

Environment variables:
    STAKEGOV_REWARD_PER_SECOND     int   — master emission rate (default 100)
    STAKEGOV_POLL_DURATION         int   — default poll duration, seconds (default 1209600)
    STAKEGOV_POLL_QUORUM           int   — default quorum percent (default 34)
    STAKEGOV_POLL_MIN_THRESHOLD    int   — default min threshold (default 0)
    STAKEGOV_EVENT_LOG             path  — JSONL event log (default: in-memory)
    STAKEGOV_LOG_LEVEL / STAKEGOV_LOG_FORMAT — see stakegov.logging
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from stakegov.errors import Unauthorized


TWO_WEEKS_SECONDS = 1_209_600


@dataclass
class StakingConfig:
    """Staking pool configuration record."""
    admin: str
    reward_token: str
    inc_token: str
    master: str
    is_stopped: bool = False


@dataclass
class PollDefaults:
    """Default poll parameters used when NewPoll carries no config.

    quorum and min_threshold are whole percentages (0..100).
    """
    duration: int = TWO_WEEKS_SECONDS
    quorum: int = 34
    min_threshold: int = 0


@dataclass
class FactoryConfig:
    """Poll factory configuration record."""
    admin: str
    staking_pool: str
    poll_code_id: int
    id_counter: int = 0


def require_admin(admin: str, sender: str, action: str) -> None:
    """Guard for admin-only operations."""
    if sender != admin:
        raise Unauthorized(sender, action, f"not an admin: {sender}")


@dataclass(frozen=True)
class SystemConfig:
    """Deployment parameters for a full staking + governance system."""
    reward_per_second: int = 100
    poll_defaults: PollDefaults = field(default_factory=PollDefaults)
    event_log_path: Optional[Path] = None

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Path] = None,
    ) -> SystemConfig:
        """Build a SystemConfig from environment variables.

        When environ is None the process environment is used, after loading
        dotenv_path (or ./.env) without overriding variables already set.
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        def _int(name: str, default: int) -> int:
            raw = environ.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}") from None

        reward_per_second = _int("STAKEGOV_REWARD_PER_SECOND", 100)
        if reward_per_second < 0:
            raise ValueError("STAKEGOV_REWARD_PER_SECOND must be >= 0")

        defaults = PollDefaults(
            duration=_int("STAKEGOV_POLL_DURATION", TWO_WEEKS_SECONDS),
            quorum=_int("STAKEGOV_POLL_QUORUM", 34),
            min_threshold=_int("STAKEGOV_POLL_MIN_THRESHOLD", 0),
        )
        for name, value in (("quorum", defaults.quorum), ("min_threshold", defaults.min_threshold)):
            if not 0 <= value <= 100:
                raise ValueError(f"default poll {name} must be within 0..100, got {value}")

        log_path = environ.get("STAKEGOV_EVENT_LOG")
        return cls(
            reward_per_second=reward_per_second,
            poll_defaults=defaults,
            event_log_path=Path(log_path) if log_path else None,
        )
