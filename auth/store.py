"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route, service and dependency code never touches SQL directly.

Password lifecycle:
  The store owns hashing. Any write whose values include a "password" key
  goes through _hash_password_field() first, which validates the plaintext,
  hashes it with the configured PasswordHasher and replaces the key with
  "hashed_password". create_user() and set_password() are the only two paths
  that carry a password; update_user() strips it unconditionally.

Secret projection:
  get_by_email() is the only lookup that selects hashed_password. Every other
  read uses _PUBLIC_COLUMNS, so a User fetched by id or listed never holds the
  hash even before it reaches the serialization layer.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Email uniqueness is enforced by a UNIQUE index; the pre-insert lookup only
  exists to produce a clean EmailInUse on the common path. A concurrent
  duplicate that slips past it surfaces as IntegrityError and is mapped to the
  same error.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import EmailInUse, ValidationError
from auth.models import Role, User
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher

logger = logging.getLogger("tokengate.auth")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Fields update_user() may write. Passwords are deliberately absent.
_UPDATABLE_FIELDS = frozenset({"name", "email", "role", "is_active"})
_PASSWORD_FIELDS = frozenset({"password", "hashed_password"})
_SORTABLE_FIELDS = frozenset({"created_at", "updated_at", "name", "email", "role"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True, index=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.user.value),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_PUBLIC_COLUMNS = [c for c in _users.c if c.name != "hashed_password"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _validate_email(email: str) -> str:
    email = normalize_email(email)
    if len(email) > 255 or not _EMAIL_RE.match(email):
        raise ValidationError("Please provide a valid email address.")
    return email


def _validate_name(name: str) -> str:
    name = name.strip()
    if not name or len(name) > 100:
        raise ValidationError("Name must be between 1 and 100 characters.")
    return name


def validate_role(role: str | Role) -> str:
    try:
        return Role(role).value
    except ValueError:
        allowed = ", ".join(r.value for r in Role)
        raise ValidationError(f"Role must be one of: {allowed}.") from None


def _parse_sort(sort: str):
    descending = sort.startswith("-")
    key = sort.lstrip("-")
    if key not in _SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by '{key}'.")
    column = _users.c[key]
    return column.desc() if descending else column.asc()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///tokengate.db", hasher=PasswordHasher(rounds=10))
        user = store.create_user(name="Ada", email="ada@example.com", password="secret1")
        store.get_by_id(user.id)
        store.close()
    """

    def __init__(
        self,
        db_url: str,
        hasher: PasswordHasher | None = None,
        password_min_length: int = 6,
    ) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        self.hasher = hasher or PasswordHasher()
        self.password_min_length = password_min_length
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Password pre-write hook
    # ------------------------------------------------------------------

    def _hash_password_field(self, values: dict) -> dict:
        """Replace a plaintext "password" entry with its bcrypt hash.

        No-op when the write does not touch the password.
        """
        if "password" not in values:
            return values
        plain = values.pop("password")
        if not isinstance(plain, str) or len(plain) < self.password_min_length:
            raise ValidationError(f"Password must be at least {self.password_min_length} characters long.")
        if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes.")
        values["hashed_password"] = self.hasher.hash(plain)
        return values

    def check_password(self, user: User | None, plain: str) -> bool:
        """Compare plain against the user's stored hash.

        user must come from get_by_email(); other lookups carry no hash. With
        user=None (or no hash) a dummy bcrypt check still runs so the caller's
        timing does not depend on whether the account exists.
        """
        if user is None or not user.hashed_password:
            self.hasher.verify_dummy(plain)
            return False
        return self.hasher.verify(plain, user.hashed_password)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key, without the password hash."""
        with self.engine.connect() as conn:
            row = conn.execute(select(*_PUBLIC_COLUMNS).where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, INCLUDING the password hash.

        This is the only method that returns the hash. Use it for credential
        verification only; never hand its result to a serializer.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(
                select(_users.c.id).where(_users.c.email == normalize_email(email))
            ).scalar()
        return found is not None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def count_active_admins(self) -> int:
        """Return the number of active admin users.

        Used by the user management routes to refuse removing the last admin [M4].
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == Role.admin.value) & (_users.c.is_active.is_(True)))
            ).scalar()
        return result or 0

    def list_users(self, page: int = 1, limit: int = 10, sort: str = "-created_at") -> list[User]:
        """Return one page of users.

        sort is a column name optionally prefixed with "-" for descending order.
        Ties are broken by id so pages are stable.
        """
        if page < 1:
            raise ValidationError("page must be at least 1.")
        if limit < 1 or limit > 100:
            raise ValidationError("limit must be between 1 and 100.")
        order = _parse_sort(sort)
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(*_PUBLIC_COLUMNS)
                .order_by(order, _users.c.id.asc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: str | Role = Role.user,
        is_active: bool = True,
    ) -> User:
        """Insert a new user and return it (without the hash).

        Raises ValidationError for a bad name, email, role or password and
        EmailInUse if the email is already registered.
        """
        values = {
            "name": _validate_name(name),
            "email": _validate_email(email),
            "role": validate_role(role),
            "is_active": bool(is_active),
            "password": password,
        }
        if self.email_exists(values["email"]):
            raise EmailInUse()
        values = self._hash_password_field(values)
        now = _now_iso()
        values["created_at"] = now
        values["updated_at"] = now
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.insert().values(**values))
                conn.commit()
                user_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise EmailInUse() from exc
        logger.info("Created user id=%s role=%s", user_id, values["role"])
        return self.get_by_id(user_id)

    def update_user(self, user_id: int, **fields) -> User | None:
        """Update profile and administrative fields on an existing user.

        Accepted fields: name, email, role, is_active. Password fields are
        dropped here no matter who calls -- set_password() is the only way to
        change a password. Returns the updated user, or None if user_id does
        not exist.
        """
        stripped = _PASSWORD_FIELDS & fields.keys()
        if stripped:
            logger.warning("Ignoring password field(s) in generic update for user id=%s", user_id)
            for key in stripped:
                fields.pop(key)
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown user field(s): {', '.join(sorted(unknown))}.")

        values: dict = {}
        if fields.get("name") is not None:
            values["name"] = _validate_name(fields["name"])
        if fields.get("email") is not None:
            values["email"] = _validate_email(fields["email"])
        if fields.get("role") is not None:
            values["role"] = validate_role(fields["role"])
        if fields.get("is_active") is not None:
            values["is_active"] = bool(fields["is_active"])

        if not values:
            return self.get_by_id(user_id)

        if "email" in values:
            with self.engine.connect() as conn:
                owner = conn.execute(select(_users.c.id).where(_users.c.email == values["email"])).scalar()
            if owner is not None and owner != user_id:
                raise EmailInUse()
        return self._write(user_id, values)

    def set_password(self, user_id: int, new_password: str) -> User | None:
        """Re-hash and store a new password. Returns None if user_id does not exist."""
        values = self._hash_password_field({"password": new_password})
        return self._write(user_id, values)

    def _write(self, user_id: int, values: dict) -> User | None:
        values["updated_at"] = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
                conn.commit()
        except IntegrityError as exc:
            raise EmailInUse() from exc
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def delete_user(self, user_id: int) -> User | None:
        """Permanently delete a user record. Returns the removed user, or None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(select(*_PUBLIC_COLUMNS).where(_users.c.id == user_id)).fetchone()
            if row is None:
                return None
            conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        logger.info("Deleted user id=%s", user_id)
        return _row_to_user(row)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Run a trivial query to verify the database is reachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.exception("User store health check failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    # Rows from _PUBLIC_COLUMNS selects have no hashed_password attribute.
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=row.role,
        hashed_password=getattr(row, "hashed_password", None),
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
