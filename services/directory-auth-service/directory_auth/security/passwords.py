"""Deterministic password hashing for local credential lookups."""

from __future__ import annotations

import hashlib


class PasswordHasher:
    """PBKDF2-HMAC-SHA512 keyed by the deployment salt.

    The output is deterministic so stored hashes can be matched in a single
    lookup together with the username.
    """

    def __init__(self, salt: str, iterations: int = 120_000) -> None:
        if not salt:
            raise ValueError("password salt must not be empty")
        self._salt = salt.encode("utf-8")
        self._iterations = iterations

    def hash(self, password: str) -> str:
        """Return the hex digest for ``password``."""
        digest = hashlib.pbkdf2_hmac("sha512", password.encode("utf-8"), self._salt, self._iterations)
        return digest.hex()
