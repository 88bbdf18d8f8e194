"""
auth/service.py -- Registration, login and password-change orchestration.

AuthService ties the credential store, token codec and revocation list
together. It raises only auth.errors types; the API layer turns them into
responses.

Enumeration resistance [C1]:
  login() runs exactly one bcrypt check whether or not the email exists and
  raises the same InvalidCredentials for "no such email" and "wrong
  password". The active flag is checked only after the password matched, so
  an unauthenticated caller cannot learn that an account exists but is
  deactivated.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any

from auth.errors import (
    AccountDeactivated,
    EmailInUse,
    IncorrectPassword,
    InvalidCredentials,
    NotFound,
    PasswordMismatch,
    RevokedToken,
)
from auth.models import AuthResult, Role, User
from auth.revocation import RevocationStore
from auth.store import UserStore, validate_role
from auth.tokens import TokenCodec

logger = logging.getLogger("tokengate.auth")

REGISTRATION_ROLE_POLICIES = ("honor", "force_user")


class AuthService:
    """Authentication use cases.

    revocations may be None, in which case tokens are purely stateless:
    logout is a no-op and a password change leaves earlier tokens valid until
    they expire.
    """

    def __init__(
        self,
        store: UserStore,
        codec: TokenCodec,
        revocations: RevocationStore | None = None,
        registration_role_policy: str = "honor",
    ) -> None:
        if registration_role_policy not in REGISTRATION_ROLE_POLICIES:
            raise ValueError(f"Unknown registration role policy: {registration_role_policy!r}")
        self.store = store
        self.codec = codec
        self.revocations = revocations
        self.registration_role_policy = registration_role_policy

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def issue_token(self, user: User) -> str:
        return self.codec.issue({"user_id": user.id, "email": user.email, "role": user.role})

    def verify_token(self, token: str) -> dict[str, Any]:
        """Verify a presented token, including the revocation list."""
        claims = self.codec.verify(token)
        if self.revocations is not None and self.revocations.is_revoked(claims):
            raise RevokedToken()
        return claims

    # ------------------------------------------------------------------
    # Use cases
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str, role: str | Role | None = None) -> AuthResult:
        """Create an account and return it with a token.

        Raises EmailInUse if the email is taken, ValidationError for bad input.
        """
        if self.store.email_exists(email):
            raise EmailInUse()

        requested = validate_role(role) if role is not None else Role.user.value
        if self.registration_role_policy == "force_user":
            assigned = Role.user.value
        else:
            assigned = requested
            if assigned != Role.user.value:
                logger.warning("Self-registration with elevated role %r for %s", assigned, email)

        user = self.store.create_user(name=name, email=email, password=password, role=assigned)
        return AuthResult(user=user, token=self.issue_token(user))

    def login(self, email: str, password: str) -> AuthResult:
        user = self.store.get_by_email(email)
        if not self.store.check_password(user, password):
            logger.info("Failed login attempt")
            raise InvalidCredentials()
        if not user.is_active:
            logger.info("Login refused for deactivated user id=%s", user.id)
            raise AccountDeactivated()
        public = dataclasses.replace(user, hashed_password=None)
        return AuthResult(user=public, token=self.issue_token(public))

    def get_me(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    def update_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        confirm_password: str | None = None,
        presented_claims: dict[str, Any] | None = None,
    ) -> AuthResult:
        """Change a password after re-verifying the current one.

        On success every token issued to the user before this call is revoked
        (when revocation is enabled) and a fresh token is returned. On a wrong
        current password nothing is written.
        """
        if confirm_password is not None and confirm_password != new_password:
            raise PasswordMismatch()

        user = self.get_me(user_id)
        # get_by_id never carries the hash; re-read through the credential lookup.
        with_secret = self.store.get_by_email(user.email)
        if not self.store.check_password(with_secret, current_password):
            raise IncorrectPassword()

        updated = self.store.set_password(user_id, new_password)
        if updated is None:
            raise NotFound()

        if self.revocations is not None:
            self.revocations.revoke_all_before(user_id, time.time(), self.codec.expire_seconds)
            if presented_claims is not None:
                self.logout(presented_claims)
        logger.info("Password changed for user id=%s", user_id)
        return AuthResult(user=updated, token=self.issue_token(updated))

    def logout(self, claims: dict[str, Any]) -> None:
        """Revoke the token the claims came from. No-op without a revocation list."""
        if self.revocations is None:
            return
        self.revocations.revoke(claims["jti"], claims["user_id"], claims["exp"])
