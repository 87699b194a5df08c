"""Domain-level request contracts and configuration shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta


@dataclass(slots=True)
class SignupInput:
    """Raw signup fields as received from the client."""

    email: str
    password: str
    name: str


@dataclass(slots=True)
class LoginInput:
    """Raw login credentials as received from the client."""

    email: str
    password: str


@dataclass(frozen=True, slots=True)
class LockoutConfig:
    """Failed-login threshold and how long an account stays locked once it is reached."""

    max_attempts: int = 10
    lock_duration: timedelta = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """Settings the auth service needs, injected at construction."""

    bcrypt_rounds: int = 10
    lockout: LockoutConfig = field(default_factory=LockoutConfig)
