"""
api/routes/v1/users.py -- User management REST endpoints.

Routes:
  GET    /api/v1/users          -- paginated list (admin, moderator)
  POST   /api/v1/users          -- create user with any role (admin)
  GET    /api/v1/users/{id}     -- one user (admin, moderator, or the user themself)
  PUT    /api/v1/users/{id}     -- update (admin: any field; self: name and email only)
  DELETE /api/v1/users/{id}     -- permanent delete (admin)

Security:
  IDOR guard: GET/PUT on another user's id require a staff/admin role; the
      check runs against the role re-read from the store, not the token claim.
  [M4] An admin cannot deactivate or delete their own account, and the last
      active admin cannot demote themself.
  Password fields are never accepted here; UserUpdate ignores them and the
      store strips them again.
"""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Path, Query, Request

from api.models import PaginationMeta, UserCreate, UserListResponse, UserResponse, UserUpdate
from auth.dependencies import get_current_user, require_admin, require_staff
from auth.errors import Forbidden, NotFound, ValidationError
from auth.models import Role, User
from auth.store import UserStore

# Auth policy:
# - GET    /api/v1/users:        admin or moderator (require_staff)
# - POST   /api/v1/users:        admin (require_admin)
# - GET    /api/v1/users/{id}:   authenticated; staff or self
# - PUT    /api/v1/users/{id}:   authenticated; admin or self (restricted fields)
# - DELETE /api/v1/users/{id}:   admin (require_admin)
router = APIRouter()

_STAFF_ROLES = {Role.admin.value, Role.moderator.value}

# Bound by a signed 64-bit INTEGER column; larger values overflow the driver.
MAX_USER_ID = 2**63 - 1
MAX_PAGE = 1_000_000


def _user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def _get_or_404(store: UserStore, user_id: int) -> User:
    user = store.get_by_id(user_id)
    if user is None:
        raise NotFound()
    return user


def _is_last_active_admin(store: UserStore, user: User) -> bool:
    return user.role == Role.admin.value and user.is_active and store.count_active_admins() <= 1


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1, le=MAX_PAGE),
    limit: int = Query(default=10, ge=1, le=100),
    sort: str = Query(default="-created_at", max_length=20),
    current_user: User = Depends(require_staff),
) -> UserListResponse:
    """List users one page at a time. Sort by created_at, updated_at, name, email or role; prefix "-" for descending."""
    store = _user_store(request)
    users = store.list_users(page=page, limit=limit, sort=sort)
    total = store.count_users()
    return UserListResponse(
        users=[UserResponse.from_user(u) for u in users],
        pagination=PaginationMeta(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Create an account directly, with any role. Admin only."""
    created = _user_store(request).create_user(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        is_active=body.is_active,
    )
    return UserResponse.from_user(created)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int = Path(ge=1, le=MAX_USER_ID),
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Return one user. Staff may read anyone; other users only themselves."""
    if current_user.id != user_id and current_user.role not in _STAFF_ROLES:
        raise Forbidden()
    return UserResponse.from_user(_get_or_404(_user_store(request), user_id))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    body: UserUpdate,
    user_id: int = Path(ge=1, le=MAX_USER_ID),
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update a user.

    Admins may change any field on any user. Everyone else may change only
    their own name and email.
    """
    store = _user_store(request)
    is_admin = current_user.role == Role.admin.value
    if not is_admin:
        if current_user.id != user_id:
            raise Forbidden()
        if body.role is not None or body.is_active is not None:
            raise Forbidden("Only administrators can change roles or account status.")

    target = _get_or_404(store, user_id)
    if body.is_active is False and target.id == current_user.id:
        raise ValidationError("You cannot deactivate your own account.")
    demoting = body.role is not None and body.role != Role.admin
    if (demoting or body.is_active is False) and _is_last_active_admin(store, target):
        raise ValidationError("Cannot demote or deactivate the last active admin account.")

    updated = store.update_user(user_id, **body.model_dump(exclude_none=True))
    if updated is None:
        raise NotFound()
    return UserResponse.from_user(updated)


@router.delete("/users/{user_id}")
def delete_user(
    request: Request,
    user_id: int = Path(ge=1, le=MAX_USER_ID),
    current_user: User = Depends(require_admin),
) -> None:
    """Permanently delete a user. Admin only. Tokens held by the user stop working immediately."""
    store = _user_store(request)
    if user_id == current_user.id:
        raise ValidationError("You cannot delete your own account.")
    if store.delete_user(user_id) is None:
        raise NotFound()
    return None
