"""
auth/tokens.py -- JWT issue and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the account id (sub), username, role, issue time and expiry.

  Failure taxonomy: verify_access_token() raises one of three TokenError
       subclasses so callers can tell an expired session apart from garbage:
         MalformedTokenError   -- not a decodable JWT, or required claims absent
         InvalidSignatureError -- decodable but signed with another key/alg
         ExpiredTokenError     -- valid signature, exp in the past
       The route layer collapses the first two into one generic 401.

  SECRET_KEY: sourced from core.config.get_settings() on every call, never
       from a literal. Settings refuses to load without a key of at least 32
       characters, so there is no fallback secret anywhere in the process.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import TokenClaims
from core.config import get_settings

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "username", "role", "exp")


class TokenError(Exception):
    """Base class for access-token verification failures."""


class MalformedTokenError(TokenError):
    pass


class InvalidSignatureError(TokenError):
    pass


class ExpiredTokenError(TokenError):
    pass


def create_access_token(
    account_id: str,
    username: str,
    role: str,
    expire_seconds: int = 0,
    now: datetime | None = None,
) -> str:
    """Encode a signed JWT with account identity and expiry.

    Args:
        account_id:     Store id, written to the `sub` claim.
        username:       Display name carried for clients.
        role:           "user" or "admin".
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.token_expire_seconds.
        now:            Issue time. Defaults to the current UTC time; tests
                        pass an earlier value to mint already-expired tokens.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": account_id,
        "username": username,
        "role": role,
        "iat": issued,
        "exp": issued + timedelta(seconds=duration),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def verify_access_token(token: str) -> TokenClaims:
    """Verify a JWT and return its claims.

    Structure is checked before the signature so a truncated or non-JWT value
    is reported as malformed rather than as a signature failure. python-jose
    checks the signature before exp, so a forged expired token is reported as
    InvalidSignatureError, never ExpiredTokenError.
    """
    try:
        unverified = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise MalformedTokenError("Token is not a valid JWT.") from exc
    if any(claim not in unverified for claim in _REQUIRED_CLAIMS):
        raise MalformedTokenError("Token is missing required claims.")

    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise ExpiredTokenError("Token has expired.") from exc
    except JWTError as exc:
        raise InvalidSignatureError("Token signature is invalid.") from exc

    return TokenClaims(
        account_id=str(payload["sub"]),
        username=str(payload["username"]),
        role=str(payload["role"]),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
