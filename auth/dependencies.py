"""
auth/dependencies.py -- FastAPI Depends() helpers: the per-request auth gate.

Three modes, all converging on the same User lookup:

  get_current_user()      -- required. Missing or bad credentials raise the
                             matching auth.errors type (401).
  try_get_current_user()  -- optional. Same chain, but any AuthError yields
                             None and the request proceeds anonymously.
  require_role(...)       -- role-gated. Built on an explicit upstream user
                             accessor (get_current_user by default) and
                             raises Forbidden (403) for roles outside the set.

The required chain, in order:
  1. Authorization: Bearer <token> header present and non-blank  (NotAuthenticated)
  2. Token verifies and is not revoked        (InvalidToken / ExpiredToken / RevokedToken)
  3. The user in the token still exists        (UserGone)
  4. That user is active                       (AccountDeactivated)
Step 3 re-reads the store on every request, so role and status decisions
reflect the current record rather than the claims frozen into the token.

On success the User and the verified claims are attached to request.state
(user / token_claims) for downstream handlers.

Layer rule: this module may import from fastapi because it is part of the
FastAPI dependency injection system. It must not import from api/.
"""

from __future__ import annotations

from typing import Any, Callable

from fastapi import Depends, Request

from auth.errors import AccountDeactivated, AuthError, Forbidden, InternalError, NotAuthenticated, UserGone
from auth.models import Role, User


def _extract_bearer(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def authenticate_request(request: Request) -> User:
    """Run the required-auth chain and return the resolved user.

    Raises an AuthError subclass at the first failing step.
    """
    token = _extract_bearer(request)
    if token is None:
        raise NotAuthenticated()

    auth_service = request.app.state.auth_service
    claims = auth_service.verify_token(token)

    user = request.app.state.user_store.get_by_id(claims["user_id"])
    if user is None:
        raise UserGone()
    if not user.is_active:
        raise AccountDeactivated()

    request.state.user = user
    request.state.token_claims = claims
    return user


def get_current_user(request: Request) -> User:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    return authenticate_request(request)


def try_get_current_user(request: Request) -> User | None:
    """Attempt authentication; return None instead of raising.

    For endpoints whose behavior merely adapts to the caller's identity.
    """
    try:
        return authenticate_request(request)
    except AuthError:
        return None


def get_current_claims(request: Request, user: User = Depends(get_current_user)) -> dict[str, Any]:
    """Require authentication and return the verified token claims."""
    return request.state.token_claims


def require_role(*roles: Role | str, current_user: Callable[..., User | None] = get_current_user):
    """Build a dependency that admits only the given roles.

    Roles are checked against the closed Role enum here, at construction, so a
    typo fails at import time rather than on the first request.

    current_user is the upstream accessor the gate composes on. If it yields
    no user the wiring is wrong (e.g. the optional accessor was passed); that
    is reported as InternalError (500), not as an auth failure.

    Use as a FastAPI dependency:
        @router.delete("/users/{user_id}")
        async def route(user: User = Depends(require_role(Role.admin))): ...
    """
    if not roles:
        raise ValueError("require_role() needs at least one role")
    allowed = frozenset(Role(r) for r in roles)

    def role_gate(user: User | None = Depends(current_user)) -> User:
        if user is None:
            raise InternalError("Role check ran without an authenticated user.")
        if Role(user.role) not in allowed:
            raise Forbidden()
        return user

    role_gate.allowed_roles = allowed
    return role_gate


require_admin = require_role(Role.admin)
require_staff = require_role(Role.admin, Role.moderator)
