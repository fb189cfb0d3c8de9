"""
api/routes/auth.py -- Registration, login and profile endpoints.

Routes:
  POST /api/auth/register  -- create an account; returns token + public view (201)
  POST /api/auth/login     -- email/password login; returns token + public view
  POST /api/auth/logout    -- stateless; tells the client to discard its token
  GET  /api/auth/profile   -- current account (requires Bearer token)

Security:
  register and login are rate-limited per IP (LOGIN_RATE_LIMIT).
  auth.service.authenticate() owns the login order (lock check before bcrypt,
  dummy bcrypt for unknown emails) -- use it, never inline the steps here.
  Wrong email, wrong password and deactivated account share one 401 message.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AccountDetail,
    AccountView,
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserResponse,
)
from auth.dependencies import get_token_claims
from auth.models import Account, TokenClaims
from auth.service import authenticate, register_account
from auth.store import AccountStore
from auth.tokens import create_access_token
from core.config import get_settings
from core.errors import AuthenticationError, NotFoundError

logger = logging.getLogger("gatekeeper.api")

# Auth policy:
# - POST /api/auth/register:  public, rate-limited
# - POST /api/auth/login:     public, rate-limited
# - POST /api/auth/logout:    public -- tokens are stateless
# - GET  /api/auth/profile:   requires a valid Bearer token (get_token_claims)
router = APIRouter()

_LOGIN_LIMIT = get_settings().login_rate_limit


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(_LOGIN_LIMIT)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user account and sign the caller in.

    Duplicate username or email returns 400 with code "duplicate". The new
    account always has role "user"; admins are created with the CLI.
    """
    store: AccountStore = request.app.state.account_store
    account = register_account(store, body.username, body.email, body.password)
    return _token_response(account, "User registered successfully", status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(_LOGIN_LIMIT)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    401 for bad credentials, 423 with Retry-After while the account is locked.
    """
    store: AccountStore = request.app.state.account_store
    account = authenticate(store, body.email, body.password)
    logger.info("Login succeeded for account %s", account.id)
    return _token_response(account, "Login successful")


@router.post("/auth/logout", response_model=MessageResponse)
def logout() -> MessageResponse:
    """Acknowledge a logout. The client discards its token."""
    return MessageResponse(message="Logged out")


@router.get("/auth/profile", response_model=UserResponse)
def profile(request: Request, claims: TokenClaims = Depends(get_token_claims)) -> UserResponse:
    """Return the account identified by the Bearer token."""
    store: AccountStore = request.app.state.account_store
    account = store.get_by_id(claims.account_id)
    if account is None:
        raise NotFoundError("User not found")
    if not account.is_active:
        raise AuthenticationError("Invalid or expired token.", code="invalid_token")
    return UserResponse(user=AccountDetail.from_account(account))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_response(account: Account, message: str, status_code: int = 200) -> JSONResponse:
    token = create_access_token(account.id, account.username, account.role)
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(message=message, token=token, user=AccountView.from_account(account)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
