"""Allocation continuations — deposit/withdraw intents carried through the master.

A deposit or withdrawal is never applied when it is requested. The pool
first asks the master coordinator to allocate rewards, attaching the
intent as opaque bytes. The master echoes the bytes back in its
NotifyAllocation callback, and only then does the pool decode and run the
intent, against an accumulator that already includes the allocation.

Wire form (canonical JSON, one externally tagged variant):
    {"deposit": {"from": "<address>", "amount": "<int>"}}
    {"redeem":  {"to": "<address>", "amount": "<int>" | null}}

Amounts are decimal strings so no JSON consumer ever rounds them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from stakegov.errors import MalformedContinuation


@dataclass(frozen=True)
class DepositIntent:
    participant: str
    amount: int


@dataclass(frozen=True)
class WithdrawIntent:
    """amount=None withdraws whatever is locked when the intent runs."""
    participant: str
    amount: Optional[int] = None


Continuation = Union[DepositIntent, WithdrawIntent]


def encode(intent: Continuation) -> bytes:
    """Serialize an intent to its canonical wire form."""
    if isinstance(intent, DepositIntent):
        body: dict[str, Any] = {
            "deposit": {"from": intent.participant, "amount": str(intent.amount)}
        }
    elif isinstance(intent, WithdrawIntent):
        body = {
            "redeem": {
                "to": intent.participant,
                "amount": None if intent.amount is None else str(intent.amount),
            }
        }
    else:
        raise TypeError(f"Not a continuation: {type(intent).__name__}")
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode(raw: bytes) -> Continuation:
    """Parse a continuation. Anything unexpected raises MalformedContinuation."""
    try:
        body = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedContinuation(f"continuation is not valid JSON: {exc}") from exc

    if not isinstance(body, dict) or len(body) != 1:
        raise MalformedContinuation("continuation must hold exactly one variant")

    (tag, fields), = body.items()
    if not isinstance(fields, dict):
        raise MalformedContinuation(f"variant {tag!r} must be an object")

    if tag == "deposit":
        participant = _address(fields, "from")
        amount = _amount(fields.get("amount"))
        if amount is None:
            raise MalformedContinuation("deposit amount is required")
        return DepositIntent(participant=participant, amount=amount)
    if tag == "redeem":
        participant = _address(fields, "to")
        return WithdrawIntent(participant=participant, amount=_amount(fields.get("amount")))

    raise MalformedContinuation(f"unknown continuation variant {tag!r}")


def _address(fields: dict[str, Any], key: str) -> str:
    value = fields.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedContinuation(f"{key!r} must be a non-empty address")
    return value


def _amount(value: Any) -> Optional[int]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.isdigit():
        raise MalformedContinuation(f"amount must be a decimal string, got {value!r}")
    return int(value)
