"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work; routes map these onto the API schemas in api/models.py.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Closed set of roles. Anything outside it is rejected before persistence."""

    user = "user"
    admin = "admin"
    moderator = "moderator"


@dataclass
class User:
    """A registered identity.

    hashed_password is only populated by UserStore.get_by_email(), the single
    lookup used for credential verification. Every other lookup projects the
    column away, so this is None for users fetched by id or listed. It is also
    excluded from repr() and from to_public(), the only serialization used in
    responses.

    email is stored lower-cased; role is stored as its string value.
    """

    name: str
    email: str
    role: str = Role.user.value
    id: int | None = None
    hashed_password: str | None = field(default=None, repr=False)
    is_active: bool = True
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""  # ISO 8601, bumped by store on every write

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class AuthResult:
    """Outcome of register / login / password change: the user plus a fresh token."""

    user: User
    token: str
