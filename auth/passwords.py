"""
auth/passwords.py -- bcrypt password hashing with a configurable work factor.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

Timing equalization [C1]: verify_dummy() runs a full bcrypt check against a
hash computed once per hasher, so "unknown email" costs the same as "wrong
password" and response time does not reveal which emails are registered.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Hash and verify passwords at a fixed cost factor.

    Usage:
        hasher = PasswordHasher(rounds=10)
        stored = hasher.hash("secret1")
        hasher.verify("secret1", stored)   # True
    """

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        self._dummy_hash: str | None = None

    def hash(self, plain: str) -> str:
        """Return a salted bcrypt hash of the plaintext password."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the hash.

        The comparison happens inside bcrypt.checkpw, never as a string compare.
        A malformed stored hash is treated as a mismatch.
        """
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, plain: str) -> None:
        """Spend one bcrypt check's worth of time and discard the result."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("tokengate_timing_dummy")
        self.verify(plain, self._dummy_hash)
