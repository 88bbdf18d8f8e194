"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register          -- create account; returns {user, token} (201)
  POST /api/v1/auth/login             -- password login; returns {user, token}
  GET  /api/v1/auth/me                -- current user (requires auth)
  PUT  /api/v1/auth/update-password   -- change password; returns {user, token} (requires auth)
  POST /api/v1/auth/logout            -- revoke the presented token; returns null (requires auth)
  GET  /api/v1/auth/status            -- whether the caller is authenticated (optional auth)

Security:
  [H2] register and login are rate-limited per IP (AUTH_RATE_LIMIT).
  [C1] AuthService.login() does the timing-equalized credential check -- never
       inline get_by_email() + check_password() here.
  [M5] Cache-Control: no-store on every response that carries a token.

Handlers that reach bcrypt or the database are plain `def` so FastAPI runs
them in its threadpool instead of blocking the event loop.

Errors: handlers raise auth.errors types and let them propagate; the
exception handler in api/main.py renders the error envelope.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import auth_rate_limit, limiter
from api.models import (
    AuthResponse,
    AuthStatusResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
    UpdatePasswordRequest,
    UserResponse,
)
from auth.dependencies import get_current_claims, get_current_user, try_get_current_user
from auth.models import AuthResult, User
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register:         public, rate limited
# - POST /api/v1/auth/login:            public, rate limited
# - GET  /api/v1/auth/me:               requires auth (get_current_user)
# - PUT  /api/v1/auth/update-password:  requires auth (get_current_claims)
# - POST /api/v1/auth/logout:           requires auth (get_current_claims)
# - GET  /api/v1/auth/status:           optional auth (try_get_current_user)
router = APIRouter()


def _auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _token_response(request: Request, result: AuthResult, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            user=UserResponse.from_user(result.user),
            token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_auth_service(request).codec.expires_in,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(auth_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and return it together with a signed token.

    The requested role is applied according to REGISTRATION_ROLE_POLICY.
    """
    result = _auth_service(request).register(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
    )
    return _token_response(request, result, status_code=201)


@limiter.limit(auth_rate_limit)  # [H2]
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Wrong password and unknown email return the same 401 invalid_credentials.
    Include the returned token as: Authorization: Bearer <token>
    """
    result = _auth_service(request).login(body.email, body.password)
    return _token_response(request, result)


@router.get("/auth/status", response_model=AuthStatusResponse)
def auth_status(user: User | None = Depends(try_get_current_user)) -> AuthStatusResponse:
    """Report whether the request carries valid credentials. Never fails."""
    if user is None:
        return AuthStatusResponse(authenticated=False)
    return AuthStatusResponse(authenticated=True, user=UserResponse.from_user(user))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the current user, re-read from the store."""
    user = _auth_service(request).get_me(current_user.id)
    return MeResponse(user=UserResponse.from_user(user))


@router.put("/auth/update-password", response_model=AuthResponse)
def update_password(
    request: Request,
    body: UpdatePasswordRequest,
    claims: dict[str, Any] = Depends(get_current_claims),
) -> JSONResponse:
    """Change the caller's password and return a fresh token.

    Tokens issued before the change stop working when revocation is enabled,
    including the one used for this request.
    """
    result = _auth_service(request).update_password(
        claims["user_id"],
        body.current_password,
        body.new_password,
        confirm_password=body.confirm_password,
        presented_claims=claims,
    )
    return _token_response(request, result)


@router.post("/auth/logout")
def logout(request: Request, claims: dict[str, Any] = Depends(get_current_claims)) -> None:
    """Revoke the presented token. Clients should discard it either way."""
    _auth_service(request).logout(claims)
    return None
