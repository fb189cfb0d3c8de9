"""
auth/lockout.py -- Per-account failed-login counter and timed lock.

States:
  UNLOCKED(failed_attempts)  -- initial state, failed_attempts starts at 0
  LOCKED(until)              -- locked_until is set and still in the future

Transitions:
  evaluate(account, now)          pure read, called BEFORE any password check
  record_failure(store, id, now)  one store transaction:
                                    expired lock  -> failed_attempts = 1, lock cleared
                                    otherwise     -> failed_attempts + 1, lock set
                                                     when the count reaches the
                                                     policy threshold;
                                                     warns only in the call
                                                     that set the lock
  record_success(store, id)       clears both fields if either is set

The machine has no terminal state and raises nothing of its own. A store
failure propagates as StorageError, which callers must not confuse with an
authentication failure.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from auth.models import Account
from auth.store import AccountStore
from core.config import Settings, get_settings

logger = logging.getLogger("gatekeeper.lockout")


class LockState(str, Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


@dataclass(frozen=True)
class LockoutPolicy:
    """Lockout thresholds. Defaults: 5 failures lock the account for 2 hours."""

    max_attempts: int = 5
    lock_duration: timedelta = timedelta(hours=2)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LockoutPolicy":
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.lockout_max_attempts,
            lock_duration=timedelta(seconds=settings.lockout_duration_seconds),
        )


def evaluate(account: Account, now: datetime) -> LockState:
    """Return LOCKED if the account's lock is still in force at `now`."""
    if account.locked_until is not None and account.locked_until > now:
        return LockState.LOCKED
    return LockState.UNLOCKED


def lock_remaining_seconds(account: Account, now: datetime) -> int:
    """Whole seconds until the lock lifts, rounded up. 0 when unlocked."""
    if evaluate(account, now) is LockState.UNLOCKED:
        return 0
    remaining = (account.locked_until - now).total_seconds()
    return max(1, int(remaining) + (remaining % 1 > 0))


def record_failure(
    store: AccountStore,
    account_id: str,
    now: datetime,
    policy: LockoutPolicy | None = None,
) -> Account | None:
    """Count a failed login and return the account as persisted afterwards.

    Returns None if the account vanished between lookup and update.
    """
    policy = policy or LockoutPolicy.from_settings()
    updated, lock_set = store.record_failed_login(account_id, now, policy.max_attempts, policy.lock_duration)
    if updated is None:
        return None
    if lock_set:
        logger.warning(
            "Account %s locked until %s after %d failed attempts",
            account_id,
            updated.locked_until.isoformat(),
            updated.failed_attempts,
        )
    return updated


def record_success(store: AccountStore, account_id: str) -> bool:
    """Clear lockout bookkeeping after a successful login.

    The store only writes when a field is non-default, so this is a no-op for
    clean accounts. The check runs in the database rather than against the
    caller's snapshot, which may predate a concurrent failure.
    """
    return store.reset_lockout(account_id)
