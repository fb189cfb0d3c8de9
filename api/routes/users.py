"""
api/routes/users.py -- User directory CRUD endpoints.

Routes:
  GET    /api/users          -- paginated list of active accounts (admin)
  GET    /api/users/{id}     -- one account (admin, or the account itself)
  PUT    /api/users/{id}     -- partial update (admin; self for username/email)
  DELETE /api/users/{id}     -- permanent delete (admin)

Every route requires a valid Bearer token for an active account. No response
includes the password hash or lockout counters.

Guards:
  - Non-admins may only read or edit their own record, and may not change
    role or isActive (403).
  - Admins may not demote, deactivate or delete themselves (400). Because
    only an active admin can change roles, this also keeps at least one
    active admin in the directory.
  - Authorization is checked before existence, so a non-admin cannot learn
    which ids exist.
"""

from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, Query, Request

from api.models import AccountDetail, MessageResponse, Pagination, UserListResponse, UserResponse, UserUpdate
from auth.dependencies import get_current_account, require_admin
from auth.models import Account
from auth.store import AccountStore
from core.errors import AuthorizationError, NotFoundError, ValidationError

logger = logging.getLogger("gatekeeper.api")

router = APIRouter()

_MAX_LIMIT = 100
# (page - 1) * limit becomes the SQL OFFSET and must fit a signed 64-bit integer.
_MAX_PAGE = (2**63 - 1) // _MAX_LIMIT


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1, le=_MAX_PAGE),
    limit: int = Query(default=10, ge=1, le=_MAX_LIMIT),
    current: Account = Depends(require_admin),
) -> UserListResponse:
    """List active accounts, newest first. Admin only."""
    store: AccountStore = request.app.state.account_store
    accounts, total = store.list_accounts(page=page, limit=limit)
    return UserListResponse(
        users=[AccountDetail.from_account(a) for a in accounts],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@router.get("/users/{account_id}", response_model=UserResponse)
def get_user(
    request: Request,
    account_id: str,
    current: Account = Depends(get_current_account),
) -> UserResponse:
    """Return one account. Admins may read any account; users only their own."""
    _require_self_or_admin(current, account_id)
    target = _get_or_404(request.app.state.account_store, account_id)
    return UserResponse(user=AccountDetail.from_account(target))


@router.put("/users/{account_id}", response_model=UserResponse)
def update_user(
    request: Request,
    account_id: str,
    body: UserUpdate,
    current: Account = Depends(get_current_account),
) -> UserResponse:
    """Update username, email, role or isActive.

    Only the fields present in the body change. Username/email collisions
    return 400 "duplicate".
    """
    store: AccountStore = request.app.state.account_store
    _require_self_or_admin(current, account_id)

    updates = body.model_dump(exclude_none=True)
    if "role" in updates:
        updates["role"] = body.role.value
    privileged = {"role", "is_active"} & updates.keys()
    if privileged and current.role != "admin":
        raise AuthorizationError("Admin access required to change role or active status.")
    if not updates:
        raise ValidationError("No fields to update.", code="no_changes")

    target = _get_or_404(store, account_id)

    if target.id == current.id:
        if updates.get("role", target.role) != "admin" and target.role == "admin":
            raise ValidationError("You cannot remove your own admin role.", code="self_demotion")
        if updates.get("is_active") is False:
            raise ValidationError("You cannot deactivate your own account.", code="self_deactivation")

    if "username" in updates or "email" in updates:
        conflict = store.find_conflict(
            updates.get("username", target.username),
            updates.get("email", target.email),
            exclude_id=target.id,
        )
        if conflict is not None:
            raise ValidationError("Username or email already in use", code="duplicate")

    store.update_account(target.id, **updates)
    logger.info("Account %s updated by %s (fields=%s)", target.id, current.id, sorted(updates))
    updated = _get_or_404(store, target.id)
    return UserResponse(message="User updated successfully", user=AccountDetail.from_account(updated))


@router.delete("/users/{account_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    account_id: str,
    current: Account = Depends(require_admin),
) -> MessageResponse:
    """Permanently delete an account. Admin only; admins cannot delete themselves."""
    store: AccountStore = request.app.state.account_store
    if account_id == current.id:
        raise ValidationError("You cannot delete your own account.", code="self_delete")
    if not store.delete_account(account_id):
        raise NotFoundError("User not found")
    logger.info("Account %s deleted by %s", account_id, current.id)
    return MessageResponse(message="User deleted successfully")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_self_or_admin(current: Account, account_id: str) -> None:
    if current.role != "admin" and current.id != account_id:
        raise AuthorizationError("Insufficient permissions.")


def _get_or_404(store: AccountStore, account_id: str) -> Account:
    account = store.get_by_id(account_id)
    if account is None:
        raise NotFoundError("User not found")
    return account
