"""
auth/tokens.py -- Signed access token codec (JWT via python-jose).

Security design decisions:
  JWT: HS256 by default, signed with SECRET_KEY. Tokens carry user_id (also as
       the string "sub" claim), email, role, iat, exp and a random jti. The
       jti gives the revocation list something to key on; nothing else about
       a token is stored server-side.

  verify() never returns a partially trusted payload. It raises ExpiredToken
       for a correctly signed token past its exp and InvalidToken for every
       other failure (bad signature, malformed, wrong algorithm, missing
       claims). python-jose checks the signature before the claims, so a
       forged token with a stale exp is reported as invalid, not expired.

  decode() skips all checks. It exists for logging and debugging only and
       must never feed an authorization decision.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import ExpiredToken, InvalidToken

# Claims a token must carry to be usable by the request gate.
_REQUIRED_CLAIMS = ("user_id", "role", "jti", "exp")


class TokenCodec:
    """Issue and verify access tokens.

    Constructed once at startup (see api/main.py lifespan) and shared. Holds
    only configuration, so a single instance is safe across threads.

    Usage:
        codec = TokenCodec(secret_key, expire_seconds=3600)
        token = codec.issue({"user_id": 1, "email": "a@x.com", "role": "user"})
        claims = codec.verify(token)
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_seconds: int = 7 * 24 * 3600) -> None:
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.expire_seconds = expire_seconds

    @classmethod
    def from_settings(cls, settings) -> TokenCodec:
        return cls(
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
            expire_seconds=settings.token_expire_seconds,
        )

    @property
    def expires_in(self) -> int:
        return self.expire_seconds

    def issue(self, claims: dict[str, Any], expire_seconds: int | None = None) -> str:
        """Encode a signed token from claims, adding iat, exp and jti.

        Args:
            claims:         At least user_id, email and role.
            expire_seconds: Token lifetime. Defaults to the codec's configured TTL.
        """
        duration = expire_seconds if expire_seconds is not None else self.expire_seconds
        now = datetime.now(timezone.utc)
        payload = dict(claims)
        if "user_id" in payload:
            payload.setdefault("sub", str(payload["user_id"]))
        payload["iat"] = now
        payload["exp"] = now + timedelta(seconds=duration)
        payload["jti"] = uuid.uuid4().hex
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> dict[str, Any]:
        """Verify signature and expiry and return the claims.

        Raises ExpiredToken or InvalidToken (see module docstring).
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise ExpiredToken() from exc
        except JWTError as exc:
            raise InvalidToken() from exc
        if any(claim not in payload for claim in _REQUIRED_CLAIMS):
            raise InvalidToken("Invalid token payload.")
        return payload

    @staticmethod
    def decode(token: str) -> dict[str, Any] | None:
        """Return the claims WITHOUT verifying signature or expiry, or None if unparseable."""
        try:
            return jwt.get_unverified_claims(token)
        except JWTError:
            return None
