"""
auth/errors.py -- Operational error taxonomy for authentication and authorization.

Every error here is expected and client-actionable. Each class carries the
HTTP status, a stable machine-readable code and a default message, so the
single exception handler in api/main.py can format the error envelope
without a lookup table.

Layer rule: plain exceptions, no framework imports. auth/ raises, api/ formats.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for operational errors raised by the auth layer."""

    status_code: int = 400
    code: str = "bad_request"
    message: str = "Bad request."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class ValidationError(AuthError):
    code = "validation_error"
    message = "Validation failed."


class EmailInUse(AuthError):
    code = "email_in_use"
    message = "Email already in use."


class PasswordMismatch(AuthError):
    code = "password_mismatch"
    message = "Passwords do not match."


# ---------------------------------------------------------------------------
# 401
# ---------------------------------------------------------------------------


class Unauthorized(AuthError):
    """Parent of every 401. The handler adds WWW-Authenticate: Bearer for these."""

    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class InvalidCredentials(Unauthorized):
    # Deliberately identical for "no such email" and "wrong password".
    code = "invalid_credentials"
    message = "Invalid email or password."


class AccountDeactivated(Unauthorized):
    code = "account_deactivated"
    message = "Your account has been deactivated. Please contact support."


class NotAuthenticated(Unauthorized):
    code = "not_authenticated"
    message = "You are not logged in. Please log in to get access."


class InvalidToken(Unauthorized):
    code = "invalid_token"
    message = "Invalid token."


class ExpiredToken(InvalidToken):
    code = "token_expired"
    message = "Token expired."


class RevokedToken(InvalidToken):
    code = "token_revoked"
    message = "Token has been revoked."


class UserGone(Unauthorized):
    code = "user_gone"
    message = "The user belonging to this token no longer exists."


class IncorrectPassword(Unauthorized):
    code = "incorrect_password"
    message = "Current password is incorrect."


# ---------------------------------------------------------------------------
# 403 / 404 / 500
# ---------------------------------------------------------------------------


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    message = "You do not have permission to perform this action."


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    message = "User not found."


class InternalError(AuthError):
    """Programming or configuration error surfaced as a 500 (e.g. role gate without auth)."""

    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred."
