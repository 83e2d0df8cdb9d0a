"""Error taxonomy for the staking ledger and governance contracts.

Every rule violation raised by a contract handler is a ContractError. The
host treats a ContractError as "reject this invocation": the transaction
that raised it is rolled back in full. Errors are plain values (code,
message, details) so they can be surfaced in service results and logs.

ContractError subclasses ValueError, the type every other rule check in
this codebase raises.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional


class ContractError(ValueError):
    """Base class for contract-level rule violations."""

    code: str = "CONTRACT_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        if self.details:
            packed = json.dumps(
                self.details, sort_keys=True, separators=(",", ":"), default=str
            )
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


class Unauthorized(ContractError):
    """Wrong caller for an admin, master or callback-only operation."""
    code = "UNAUTHORIZED"

    def __init__(self, sender: str, action: str, message: str = "") -> None:
        super().__init__(
            message or f"{sender} is not allowed to call {action}",
            details={"sender": sender, "action": action},
        )


class InsufficientStake(ContractError):
    """Withdrawal exceeds the participant's locked amount."""
    code = "INSUFFICIENT_STAKE"

    def __init__(self, participant: str, locked: int, requested: int) -> None:
        super().__init__(
            f"insufficient funds to redeem: balance={locked}, required={requested}",
            details={
                "participant": participant,
                "locked": locked,
                "requested": requested,
            },
        )


class UnknownChoice(ContractError):
    """A vote references an option the poll does not have."""
    code = "UNKNOWN_CHOICE"

    def __init__(self, choice: int, choice_count: int) -> None:
        super().__init__(
            f"choice {choice} does not exist in this poll",
            details={"choice": choice, "choice_count": choice_count},
        )


class ChallengeMismatch(ContractError):
    """Poll self-registration presented the wrong pre-image."""
    code = "CHALLENGE_MISMATCH"

    def __init__(self, candidate: str) -> None:
        super().__init__(
            "challenge did not match; registration is only accepted as the "
            "init callback of the poll the factory just created",
            details={"candidate": candidate},
        )


class NotFinalizedOrInvalid(ContractError):
    """Tally requested before finalize or after a failed quorum."""
    code = "NOT_FINALIZED_OR_INVALID"


class AlreadyEnded(ContractError):
    """Operation requires an open poll but the poll has ended."""
    code = "ALREADY_ENDED"


class NotYetEnded(ContractError):
    """Finalize called before the poll's end timestamp."""
    code = "NOT_YET_ENDED"


class Paused(ContractError):
    """The circuit breaker is engaged."""
    code = "PAUSED"

    def __init__(self, action: str) -> None:
        super().__init__(
            "this contract is stopped and this action is not allowed",
            details={"action": action},
        )


class MalformedContinuation(ContractError):
    """An allocation callback carried a continuation that cannot be decoded."""
    code = "MALFORMED_CONTINUATION"


class InvalidPollConfig(ContractError):
    """Poll parameters failed validation at creation time."""
    code = "INVALID_POLL_CONFIG"


class InsufficientBalance(ContractError):
    """Token transfer exceeds the sender's balance."""
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, account: str, balance: int, requested: int) -> None:
        super().__init__(
            "insufficient token balance",
            details={"account": account, "balance": balance, "requested": requested},
        )


class UnknownContract(ContractError):
    """An instruction targets an address or code id the host does not know."""
    code = "UNKNOWN_CONTRACT"


class UnsupportedMessage(ContractError):
    """A contract received a message type it does not handle."""
    code = "UNSUPPORTED_MESSAGE"
