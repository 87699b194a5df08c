"""Login lockout policy.

The functions here only inspect or mutate an in-memory ``Account`` snapshot.
Persisting the result is left to the caller so that each login attempt is
written back exactly once.
"""

from __future__ import annotations

from datetime import datetime

from .account import Account
from .contracts import LockoutConfig


def is_locked(account: Account, now: datetime) -> bool:
    """Return ``True`` while ``lock_until`` is set and still in the future."""
    return account.lock_until is not None and account.lock_until > now


def clear_expired_lock(account: Account, now: datetime) -> bool:
    """Reset attempt state when a previous lock has run out.

    Returns ``True`` when a stale lock was cleared.
    """
    if account.lock_until is None or account.lock_until > now:
        return False
    account.failed_login_attempts = 0
    account.lock_until = None
    return True


def record_success(account: Account) -> None:
    account.failed_login_attempts = 0
    account.lock_until = None


def record_failure(account: Account, now: datetime, config: LockoutConfig) -> bool:
    """Count a failed attempt and lock the account once the threshold is reached.

    Returns ``True`` when the account is locked after this attempt.
    """
    account.failed_login_attempts += 1
    if account.failed_login_attempts >= config.max_attempts:
        account.lock_until = now + config.lock_duration
    return is_locked(account, now)
