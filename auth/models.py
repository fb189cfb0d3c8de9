"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, lockout machine and routes do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLES = ("user", "admin")


@dataclass
class Account:
    """A registered identity with its credential, role and lockout state.

    email is stored normalized (trimmed, lower-cased) so uniqueness and login
    lookup are case-insensitive.

    hashed_password is a bcrypt digest. It never leaves the auth layer -- the
    API response models have no field for it.

    failed_attempts / locked_until are owned by auth/lockout.py and written
    only through AccountStore's atomic update methods.
    """

    username: str
    email: str
    hashed_password: str
    role: str = "user"  # "user" or "admin"
    id: str | None = None  # uuid4 hex, assigned by the store
    is_active: bool = True
    last_login: str | None = None  # ISO 8601 UTC
    failed_attempts: int = 0
    locked_until: datetime | None = None  # aware UTC datetime
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class TokenClaims:
    """Verified identity carried by an access token."""

    account_id: str
    username: str
    role: str
    expires_at: datetime
