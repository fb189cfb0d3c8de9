"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an `Authorization: Bearer <token>` header.

get_token_claims()     -- verifies the token only; raises 401 on failure.
get_current_account()  -- also loads the account; 401 if gone or deactivated.
require_admin()        -- get_current_account() plus a role check (403).

Token failures map to a single generic 401 ("Invalid or expired token.")
except expiry, which gets its own code so clients can prompt a re-login.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
Errors are raised as core.errors exceptions, not HTTPException.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Account, TokenClaims
from auth.store import AccountStore
from auth.tokens import ExpiredTokenError, TokenError, verify_access_token
from core.errors import AuthenticationError, AuthorizationError


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_token_claims(request: Request) -> TokenClaims:
    """Require a valid Bearer token and return its claims.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: TokenClaims = Depends(get_token_claims)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise AuthenticationError("Access token required.", code="unauthorized")
    try:
        return verify_access_token(token)
    except ExpiredTokenError as exc:
        raise AuthenticationError("Token has expired.", code="token_expired") from exc
    except TokenError as exc:
        raise AuthenticationError("Invalid or expired token.", code="invalid_token") from exc


def get_current_account(request: Request) -> Account:
    """Require a valid token for an account that still exists and is active."""
    claims = get_token_claims(request)
    store: AccountStore = request.app.state.account_store
    account = store.get_by_id(claims.account_id)
    if account is None or not account.is_active:
        raise AuthenticationError("Invalid or expired token.", code="invalid_token")
    return account


def require_admin(request: Request) -> Account:
    """Require admin role. 401 if unauthenticated, 403 if not admin.

    The role is read from the stored account, not the token, so a demotion
    takes effect before the token expires.
    """
    account = get_current_account(request)
    if account.role != "admin":
        raise AuthorizationError("Admin access required.")
    return account
