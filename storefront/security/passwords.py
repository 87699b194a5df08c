"""bcrypt helpers for storing and checking account passwords."""

from __future__ import annotations

import bcrypt


def hash_password(plain: str, rounds: int = 10) -> str:
    """Return a salted bcrypt hash of ``plain`` using the given cost factor."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return ``True`` if ``plain`` matches the stored bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
