"""
API request and response models for Gatekeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

No response model has a field for the password hash or the lockout counters,
so they cannot leak through serialization even by mistake.

JSON field names follow the public contract (camelCase for isActive,
createdAt, lastLogin) via serialization/validation aliases.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from auth.models import Account

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"

# bcrypt only reads the first 72 bytes of a password.
_MAX_PASSWORD_BYTES = 72


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {_MAX_PASSWORD_BYTES} bytes")
    return value


# Annotated field types shared by the request models. Trimming runs before the
# length and pattern checks; passwords are never trimmed.
_Username = Annotated[str, BeforeValidator(_strip), Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)]
_Email = Annotated[str, BeforeValidator(_normalize_email), Field(max_length=255, pattern=EMAIL_PATTERN)]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register.

    username and email are trimmed (email also lower-cased) before the
    length/pattern checks run. The password is taken verbatim.
    """

    username: _Username
    email: _Email
    password: Annotated[str, Field(min_length=8), AfterValidator(_check_password_bytes)]


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: _Email
    password: str = Field(min_length=1, max_length=255)


class UserUpdate(BaseModel):
    """Request body for PUT /api/users/{id}. Every field is optional.

    extra="forbid" rejects attempts to set anything else (password hash,
    lockout counters, id) through this endpoint.
    """

    model_config = ConfigDict(extra="forbid")

    username: Optional[_Username] = None
    email: Optional[_Email] = None
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = Field(default=None, validation_alias=AliasChoices("isActive", "is_active"))


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountView(BaseModel):
    """Public view of an account returned by register and login."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    email: str
    role: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountView":
        return cls(id=account.id, username=account.username, email=account.email, role=account.role)


class AccountDetail(AccountView):
    """Public view plus status fields, returned by profile and directory routes."""

    is_active: bool = Field(serialization_alias="isActive")
    created_at: Optional[str] = Field(default=None, serialization_alias="createdAt")
    last_login: Optional[str] = Field(default=None, serialization_alias="lastLogin")

    @classmethod
    def from_account(cls, account: Account) -> "AccountDetail":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            role=account.role,
            is_active=account.is_active,
            created_at=account.created_at,
            last_login=account.last_login,
        )


class AuthResponse(BaseModel):
    """Response for successful register (201) and login (200)."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    token: str
    user: AccountView


class UserResponse(BaseModel):
    """Single-account response for profile, get and update."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: Optional[str] = None
    user: AccountDetail


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    limit: int
    total: int
    pages: int


class UserListResponse(BaseModel):
    """Response for GET /api/users."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    users: list[AccountDetail]
    pagination: Pagination


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses.

    success/message mirror the success envelope so clients can branch on one
    field; error carries the machine-readable code.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    timestamp: str
    components: dict[str, str]
