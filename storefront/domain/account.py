from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Aggregate root for a registered user and its login-lockout state."""

    id: str
    email: str
    password_hash: str
    name: str
    failed_login_attempts: int = 0
    lock_until: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def public(self) -> PublicAccount:
        """Return the projection that is safe to hand back to clients."""
        return PublicAccount(id=self.id, email=self.email, name=self.name)


@dataclass(slots=True, frozen=True)
class PublicAccount:
    id: str
    email: str
    name: str
