"""
tests/test_user_store.py -- Unit tests for UserStore (SQLAlchemy Core persistence).

Covers:
  - Hash-on-write: stored hash never equals the plaintext; check_password works
  - Secret projection: get_by_id / list_users carry no hash, get_by_email does
  - Email uniqueness: duplicate create raises EmailInUse and writes no row
  - Email normalization (case and surrounding whitespace)
  - update_user strips password fields; set_password is the only password path
  - Field validation: role, name, email, password length
  - delete_user returns the removed record; list_users pagination and sort
"""

from __future__ import annotations

import pytest

from auth.errors import EmailInUse, ValidationError
from auth.models import Role


class TestPasswordHashing:
    def test_stored_hash_differs_from_plaintext(self, auth_components) -> None:
        store = auth_components.user_store
        store.create_user(name="Ada", email="ada@example.com", password="secret1")
        stored = store.get_by_email("ada@example.com")
        assert stored.hashed_password
        assert stored.hashed_password != "secret1"
        assert stored.hashed_password.startswith("$2")

    def test_check_password_matches_only_the_right_password(self, auth_components) -> None:
        store = auth_components.user_store
        store.create_user(name="Ada", email="ada@example.com", password="secret1")
        stored = store.get_by_email("ada@example.com")
        assert store.check_password(stored, "secret1") is True
        assert store.check_password(stored, "secret2") is False

    def test_check_password_without_user_is_false(self, auth_components) -> None:
        """Unknown account: the dummy check runs and the answer is always False."""
        assert auth_components.user_store.check_password(None, "anything") is False

    def test_short_password_rejected(self, auth_components) -> None:
        with pytest.raises(ValidationError):
            auth_components.user_store.create_user(name="Ada", email="ada@example.com", password="123")
        assert auth_components.user_store.count_users() == 0

    def test_password_over_72_bytes_rejected(self, auth_components) -> None:
        with pytest.raises(ValidationError):
            auth_components.user_store.create_user(name="Ada", email="ada@example.com", password="x" * 73)


class TestSecretProjection:
    def test_get_by_id_has_no_hash(self, auth_components) -> None:
        store = auth_components.user_store
        created = store.create_user(name="Ada", email="ada@example.com", password="secret1")
        assert created.hashed_password is None
        assert store.get_by_id(created.id).hashed_password is None

    def test_public_view_has_no_password_key(self, auth_components) -> None:
        store = auth_components.user_store
        store.create_user(name="Ada", email="ada@example.com", password="secret1")
        public = store.get_by_email("ada@example.com").to_public()
        assert "hashed_password" not in public
        assert "password" not in public

    def test_list_users_has_no_hash(self, auth_components) -> None:
        store = auth_components.user_store
        store.create_user(name="Ada", email="ada@example.com", password="secret1")
        assert all(u.hashed_password is None for u in store.list_users())

    def test_hash_not_in_repr(self, auth_components) -> None:
        store = auth_components.user_store
        store.create_user(name="Ada", email="ada@example.com", password="secret1")
        stored = store.get_by_email("ada@example.com")
        assert stored.hashed_password not in repr(stored)


class TestEmailUniqueness:
    def test_duplicate_email_raises_and_writes_nothing(self, auth_components) -> None:
        store = auth_components.user_store
        store.create_user(name="Ada", email="ada@example.com", password="secret1")
        with pytest.raises(EmailInUse):
            store.create_user(name="Other", email="ada@example.com", password="secret2")
        assert store.count_users() == 1

    def test_email_is_normalized(self, auth_components) -> None:
        store = auth_components.user_store
        created = store.create_user(name="Ada", email="  Ada@Example.COM ", password="secret1")
        assert created.email == "ada@example.com"
        assert store.email_exists("ADA@example.com")
        with pytest.raises(EmailInUse):
            store.create_user(name="Other", email="ada@EXAMPLE.com", password="secret2")

    def test_update_to_taken_email_raises(self, auth_components) -> None:
        store = auth_components.user_store
        store.create_user(name="Ada", email="ada@example.com", password="secret1")
        bob = store.create_user(name="Bob", email="bob@example.com", password="secret1")
        with pytest.raises(EmailInUse):
            store.update_user(bob.id, email="ada@example.com")

    def test_update_to_own_email_is_allowed(self, auth_components) -> None:
        store = auth_components.user_store
        ada = store.create_user(name="Ada", email="ada@example.com", password="secret1")
        updated = store.update_user(ada.id, email="ADA@example.com", name="Ada L")
        assert updated.email == "ada@example.com"
        assert updated.name == "Ada L"


class TestValidation:
    def test_invalid_role_rejected(self, auth_components) -> None:
        with pytest.raises(ValidationError):
            auth_components.user_store.create_user(
                name="Ada", email="ada@example.com", password="secret1", role="superuser"
            )

    def test_role_enum_accepted(self, auth_components) -> None:
        user = auth_components.user_store.create_user(
            name="Ada", email="ada@example.com", password="secret1", role=Role.moderator
        )
        assert user.role == "moderator"

    def test_default_role_is_user(self, auth_components) -> None:
        user = auth_components.user_store.create_user(name="Ada", email="ada@example.com", password="secret1")
        assert user.role == "user"
        assert user.is_active is True

    def test_invalid_email_rejected(self, auth_components) -> None:
        with pytest.raises(ValidationError):
            auth_components.user_store.create_user(name="Ada", email="not-an-email", password="secret1")

    def test_blank_name_rejected(self, auth_components) -> None:
        with pytest.raises(ValidationError):
            auth_components.user_store.create_user(name="   ", email="ada@example.com", password="secret1")

    def test_unknown_update_field_rejected(self, auth_components) -> None:
        store = auth_components.user_store
        ada = store.create_user(name="Ada", email="ada@example.com", password="secret1")
        with pytest.raises(ValidationError):
            store.update_user(ada.id, nickname="ada")


class TestWrites:
    def test_update_user_strips_password(self, auth_components) -> None:
        store = auth_components.user_store
        ada = store.create_user(name="Ada", email="ada@example.com", password="secret1")
        before = store.get_by_email("ada@example.com").hashed_password

        updated = store.update_user(ada.id, name="Ada L", password="hijacked1", hashed_password="x")

        assert updated.name == "Ada L"
        after = store.get_by_email("ada@example.com")
        assert after.hashed_password == before
        assert store.check_password(after, "secret1")

    def test_set_password_rehashes(self, auth_components) -> None:
        store = auth_components.user_store
        ada = store.create_user(name="Ada", email="ada@example.com", password="secret1")
        before = store.get_by_email("ada@example.com").hashed_password

        assert store.set_password(ada.id, "secret2") is not None

        after = store.get_by_email("ada@example.com")
        assert after.hashed_password != before
        assert store.check_password(after, "secret2")
        assert not store.check_password(after, "secret1")

    def test_set_password_unknown_user_returns_none(self, auth_components) -> None:
        assert auth_components.user_store.set_password(999, "secret2") is None

    def test_update_unknown_user_returns_none(self, auth_components) -> None:
        assert auth_components.user_store.update_user(999, name="Nobody") is None

    def test_delete_returns_removed_record(self, auth_components) -> None:
        store = auth_components.user_store
        ada = store.create_user(name="Ada", email="ada@example.com", password="secret1")
        removed = store.delete_user(ada.id)
        assert removed.id == ada.id
        assert removed.email == "ada@example.com"
        assert store.get_by_id(ada.id) is None
        assert store.delete_user(ada.id) is None

    def test_count_active_admins(self, auth_components) -> None:
        store = auth_components.user_store
        store.create_user(name="A", email="a@example.com", password="secret1", role="admin")
        b = store.create_user(name="B", email="b@example.com", password="secret1", role="admin")
        store.create_user(name="C", email="c@example.com", password="secret1")
        assert store.count_active_admins() == 2
        store.update_user(b.id, is_active=False)
        assert store.count_active_admins() == 1


class TestListing:
    def _seed(self, store) -> None:
        for name in ("Carol", "Alice", "Bob"):
            store.create_user(name=name, email=f"{name.lower()}@example.com", password="secret1")

    def test_pagination(self, auth_components) -> None:
        store = auth_components.user_store
        self._seed(store)
        first = store.list_users(page=1, limit=2, sort="name")
        second = store.list_users(page=2, limit=2, sort="name")
        assert [u.name for u in first] == ["Alice", "Bob"]
        assert [u.name for u in second] == ["Carol"]

    def test_descending_sort(self, auth_components) -> None:
        store = auth_components.user_store
        self._seed(store)
        assert [u.name for u in store.list_users(sort="-name")] == ["Carol", "Bob", "Alice"]

    def test_unknown_sort_field_rejected(self, auth_components) -> None:
        with pytest.raises(ValidationError):
            auth_components.user_store.list_users(sort="hashed_password")

    def test_limit_bounds(self, auth_components) -> None:
        with pytest.raises(ValidationError):
            auth_components.user_store.list_users(limit=101)

    def test_ping(self, auth_components) -> None:
        assert auth_components.user_store.ping() is True
