"""Viewing-key keyring — the credential check behind private queries.

Keys are stored only as sha256 digests and compared in constant time.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets


class Keyring:
    """address → hashed viewing key.

    Usage:
        keyring = Keyring()
        key = keyring.create_key("alice")
        keyring.verify("alice", key)   # True
    """

    def __init__(self) -> None:
        self._digests: dict[str, str] = {}

    @staticmethod
    def _digest(key: str) -> str:
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def set_key(self, address: str, key: str) -> None:
        if not key:
            raise ValueError("Viewing key must not be empty")
        self._digests[address] = self._digest(key)

    def create_key(self, address: str) -> str:
        key = f"api_key_{secrets.token_urlsafe(24)}"
        self.set_key(address, key)
        return key

    def verify(self, address: str, key: str) -> bool:
        stored = self._digests.get(address)
        if stored is None:
            # Compare anyway so unknown addresses take the same time
            hmac.compare_digest(self._digest(key), self._digest(""))
            return False
        return hmac.compare_digest(stored, self._digest(key))
