"""
auth/service.py -- Registration and login flows.

These functions compose the store, the password hasher and the lockout
machine. They raise core.errors exceptions; the api/ layer turns those into
HTTP responses and issues tokens.

Login order is fixed:
  1. look up by normalized email  -- unknown email: dummy bcrypt, generic 401
  2. lockout evaluate             -- locked: LockedError (423), no bcrypt
  3. password verify              -- mismatch: record_failure, generic 401
  4. active check                 -- deactivated: generic 401
  5. record_success, stamp last_login

Wrong password, unknown email and deactivated account all raise the same
AuthenticationError message so the response never reveals which one it was.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from auth import lockout
from auth.lockout import LockoutPolicy, LockState
from auth.models import Account
from auth.passwords import hash_password, verify_dummy, verify_password
from auth.store import AccountStore, normalize_email
from core.errors import AuthenticationError, LockedError, StorageError, ValidationError

logger = logging.getLogger("gatekeeper.auth")

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_LOCKED = "Account is temporarily locked due to too many failed login attempts"


def register_account(store: AccountStore, username: str, email: str, password: str, role: str = "user") -> Account:
    """Create an account with a freshly hashed password and default lockout state.

    The pre-check gives the common duplicate case a clean error; the UNIQUE
    constraints behind create_account() catch the concurrent case.
    """
    email = normalize_email(email)
    if store.find_conflict(username, email) is not None:
        raise ValidationError("User already exists", code="duplicate")

    account_id = store.create_account(
        Account(username=username, email=email, hashed_password=hash_password(password), role=role)
    )
    logger.info("Registered account %s (role=%s)", account_id, role)

    created = store.get_by_id(account_id)
    if created is None:
        raise StorageError("Account not found after write.")
    return created


def authenticate(
    store: AccountStore,
    email: str,
    password: str,
    now: datetime | None = None,
    policy: LockoutPolicy | None = None,
) -> Account:
    """Run the login flow and return the authenticated account.

    Raises AuthenticationError, LockedError or StorageError. `now` and
    `policy` default to the current UTC time and the configured policy.
    """
    now = now or datetime.now(timezone.utc)
    account = store.get_by_email(email)
    if account is None:
        verify_dummy(password)
        raise AuthenticationError(INVALID_CREDENTIALS, code="invalid_credentials")

    if lockout.evaluate(account, now) is LockState.LOCKED:
        logger.info("Login refused for locked account %s", account.id)
        raise LockedError(ACCOUNT_LOCKED, retry_after=lockout.lock_remaining_seconds(account, now))

    if not verify_password(password, account.hashed_password):
        updated = lockout.record_failure(store, account.id, now, policy)
        logger.info(
            "Failed login for account %s (failed_attempts=%s)",
            account.id,
            updated.failed_attempts if updated else "?",
        )
        raise AuthenticationError(INVALID_CREDENTIALS, code="invalid_credentials")

    if not account.is_active:
        logger.info("Login refused for deactivated account %s", account.id)
        raise AuthenticationError(INVALID_CREDENTIALS, code="invalid_credentials")

    lockout.record_success(store, account.id)
    store.update_last_login(account.id, now)
    return store.get_by_id(account.id) or account
