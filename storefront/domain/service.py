"""Auth service orchestrating signup, login lockout, and token issuance."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from prometheus_client import Counter

from . import lockout
from .account import Account, PublicAccount
from .contracts import AuthConfig, LoginInput, SignupInput
from .errors import AuthError, ConflictError, LockedError, NotFoundError, ValidationError
from ..security.passwords import hash_password, verify_password
from ..security.tokens import TokenIssuer

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]{2,}$")
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)

INVALID_CREDENTIALS = "Invalid email or password."

LOGIN_ATTEMPTS = Counter(
    "storefront_login_attempts_total",
    "Login attempts grouped by outcome.",
    ["outcome"],
)


class AccountStore(Protocol):
    """Persistence operations the auth service relies on."""

    def create_account(self, *, email: str, password_hash: str, name: str) -> Account: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def save_lockout_state(self, account: Account) -> Account: ...


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Signup and login workflows backed by an account store."""

    def __init__(
        self,
        repository: AccountStore,
        tokens: TokenIssuer,
        config: AuthConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Store dependencies used to orchestrate persistence and token issuance."""
        self._repository = repository
        self._tokens = tokens
        self._config = config or AuthConfig()
        self._clock = clock

    def signup(self, payload: SignupInput) -> PublicAccount:
        """Register a new account and return its public projection."""
        if not payload.email or not payload.password or not payload.name:
            raise ValidationError("Provide email, password and name")

        email = normalize_email(payload.email)
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Provide a valid email address.")
        if not PASSWORD_PATTERN.match(payload.password):
            raise ValidationError(
                "Password must have at least 8 characters and contain at least one number, "
                "one symbol, one lowercase and one uppercase letter."
            )
        # bcrypt only reads the first 72 bytes
        if len(payload.password.encode("utf-8")) > 72:
            raise ValidationError("Password must be at most 72 characters long.")

        if self._repository.find_by_email(email) is not None:
            raise ConflictError("User already exists.")

        account = self._repository.create_account(
            email=email,
            password_hash=hash_password(payload.password, self._config.bcrypt_rounds),
            name=payload.name,
        )
        logger.info("account created id=%s email=%s", account.id, account.email)
        return account.public()

    def login(self, payload: LoginInput) -> str:
        """Authenticate credentials and return a signed access token.

        The order of checks matters: an active lock rejects the attempt before
        anything is mutated, and an expired lock is cleared before the password
        is compared so the account gets a full set of attempts again.
        """
        if not payload.email or not payload.password:
            raise ValidationError("Provide email and password.")

        email = normalize_email(payload.email)
        account = self._repository.find_by_email(email)
        if account is None:
            LOGIN_ATTEMPTS.labels(outcome="invalid").inc()
            raise NotFoundError(INVALID_CREDENTIALS)

        now = self._clock()
        if lockout.is_locked(account, now):
            LOGIN_ATTEMPTS.labels(outcome="locked").inc()
            logger.info(
                "login refused for locked account id=%s until=%s", account.id, account.lock_until
            )
            raise LockedError("Account locked. Please try again later.")

        if lockout.clear_expired_lock(account, now):
            logger.info("stale lock cleared for account id=%s", account.id)

        if verify_password(payload.password, account.password_hash):
            lockout.record_success(account)
            self._repository.save_lockout_state(account)
            LOGIN_ATTEMPTS.labels(outcome="success").inc()
            return self._tokens.issue(account)

        locked = lockout.record_failure(account, now, self._config.lockout)
        self._repository.save_lockout_state(account)
        if locked:
            LOGIN_ATTEMPTS.labels(outcome="lockout_triggered").inc()
            logger.warning(
                "account id=%s locked after %d failed attempts",
                account.id,
                account.failed_login_attempts,
            )
            raise LockedError(
                "Account locked due to too many failed login attempts. Please try again later."
            )
        LOGIN_ATTEMPTS.labels(outcome="invalid").inc()
        logger.info(
            "login rejected for account id=%s attempts=%d",
            account.id,
            account.failed_login_attempts,
        )
        raise AuthError(INVALID_CREDENTIALS)

    def verify(self, token: str) -> dict[str, Any]:
        """Decode a bearer token previously issued by :meth:`login`."""
        return self._tokens.decode(token)
