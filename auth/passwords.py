"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

The cost factor comes from Settings.bcrypt_rounds (10..15, default 12).
bcrypt.checkpw compares digests in constant time. There is no code path that
skips the comparison.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt reads at most 72 bytes (recent releases reject longer input). The
    API layer caps registration passwords at 72 bytes of UTF-8 (see
    api/models.py), so valid inputs stay under the threshold.
    """
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed digest (ValueError from bcrypt) counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash.
# Computed lazily once so unknown-email logins run the same bcrypt work as a
# wrong password and response time does not reveal whether an email exists.
_dummy_hash: str | None = None


def verify_dummy(plain: str) -> None:
    """Burn one bcrypt comparison against a throwaway hash."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("gatekeeper_timing_dummy")
    verify_password(plain, _dummy_hash)
