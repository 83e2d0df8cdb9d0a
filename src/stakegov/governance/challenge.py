"""Registration challenges — proving a poll was created by this factory.

When the factory creates a poll it draws a fresh random pre-image, keeps
only its sha256 digest, and hands the pre-image to the new poll through
its init hook. The poll registers by presenting the pre-image back.
Anyone who did not receive the init hook cannot produce it.

At most one challenge is outstanding: creating another poll before the
previous one registered overwrites it.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Optional


# Pre-image entropy, in bytes
PREIMAGE_BYTES = 32


@dataclass(frozen=True)
class IssuedChallenge:
    """A pre-image for the poll and the digest the factory keeps."""

    preimage: str   # hex, sent to the poll
    digest: str     # hex sha256 of the pre-image bytes, stored by the factory


def digest_of(preimage: str) -> str:
    return hashlib.sha256(preimage.encode("utf-8")).hexdigest()


def issue() -> IssuedChallenge:
    """Draw a new cryptographically random challenge."""
    preimage = secrets.token_hex(PREIMAGE_BYTES)
    return IssuedChallenge(preimage=preimage, digest=digest_of(preimage))


def matches(stored_digest: Optional[str], candidate: str) -> bool:
    """True when a challenge is outstanding and `candidate` is its pre-image."""
    if stored_digest is None:
        return False
    return hmac.compare_digest(stored_digest, digest_of(candidate))
