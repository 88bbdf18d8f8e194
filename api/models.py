"""
API request and response models for TokenGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

No response model here has a password field. Together with the store's column
projection that keeps password hashes out of every response twice over.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt reads at most 72 bytes; longer input is rejected rather than truncated.
# The minimum is PASSWORD_MIN_LENGTH, enforced by UserStore when it hashes.
PASSWORD_MAX_LENGTH = 72


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(max_length=PASSWORD_MAX_LENGTH)
    role: Optional[Role] = None


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    No length rules on password: a login with a too-short password is just a
    wrong password and must fail the same way.
    """

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class UpdatePasswordRequest(BaseModel):
    """Request body for PUT /api/v1/auth/update-password (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword", min_length=1, max_length=255)
    new_password: str = Field(alias="newPassword", max_length=PASSWORD_MAX_LENGTH)
    confirm_password: str = Field(alias="confirmPassword", min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Users -- request models
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (admin only)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(max_length=PASSWORD_MAX_LENGTH)
    role: Role = Role.user
    is_active: bool = True


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}.

    Unknown keys (including "password") are ignored, never written.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    role: Optional[Role] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user record."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: Role
    is_active: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(**user.to_public())


class AuthResponse(BaseModel):
    """Response for register, login and update-password: the user plus a fresh token."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    token: str
    token_type: str = "bearer"
    expires_in: int


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse


class AuthStatusResponse(BaseModel):
    """Response for GET /api/v1/auth/status (optional auth)."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    user: Optional[UserResponse] = None


class PaginationMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    page: int
    limit: int
    pages: int


class UserListResponse(BaseModel):
    """Response for GET /api/v1/users."""

    model_config = ConfigDict(frozen=True)

    users: list[UserResponse]
    pagination: PaginationMeta


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
