"""Utilities for issuing and validating application JWTs."""

from __future__ import annotations

import time
from typing import Any

import jwt

from ..domain.account import Account
from ..domain.errors import AuthError

ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 6 * 60 * 60
REQUIRED_CLAIMS = ("id", "email", "name", "exp")


class TokenIssuer:
    """Sign and verify bearer tokens carrying an account's public projection."""

    def __init__(self, secret: str, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._secret = secret
        self._ttl_seconds = ttl_seconds

    def issue(self, account: Account, *, now: float | None = None) -> str:
        """Create a signed JWT for an authenticated account.

        Parameters
        ----------
        account:
            Account whose ``id``, ``email`` and ``name`` become the token payload.
        now:
            Issue time as a UNIX timestamp; defaults to the current time.

        Returns
        -------
        str
            The encoded JWT.
        """
        issued_at = int(now if now is not None else time.time())
        payload: dict[str, Any] = {
            "id": account.id,
            "email": account.email,
            "name": account.name,
            "iat": issued_at,
            "exp": issued_at + self._ttl_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> dict[str, Any]:
        """Verify a JWT and return its claims.

        Raises
        ------
        AuthError
            When the signature, algorithm or expiry check fails, or the token
            does not carry the account claims.
        """
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": list(REQUIRED_CLAIMS)},
            )
        except jwt.PyJWTError as exc:
            raise AuthError("Invalid or expired token.") from exc
