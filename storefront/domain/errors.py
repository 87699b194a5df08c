"""Error taxonomy raised by the domain layer and mapped to HTTP statuses at the edge."""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for errors carrying a client-safe message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Missing or malformed input the client can fix."""


class ConflictError(StorefrontError):
    """A unique key (the account email) is already taken."""


class AuthError(StorefrontError):
    """Bad credentials or an unusable bearer token."""


class NotFoundError(AuthError):
    """No account matches the supplied email.

    Subclasses ``AuthError`` so callers report it exactly like a wrong password.
    """


class LockedError(StorefrontError):
    """The account is temporarily locked after repeated failed logins."""


class StoreError(StorefrontError):
    """The persistence layer could not complete an operation."""
