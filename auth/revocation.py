"""
auth/revocation.py -- Short-lived denylist for issued access tokens.

Access tokens are stateless, so without this module a token stays valid until
its exp no matter what happens to the account. Two kinds of entries close
that gap:

  revoked_tokens      -- one row per jti, written by logout and by the
                         password-change flow for the token it was called with.
  user_token_cutoffs  -- one row per user: every token for that user with
                         iat < not_before is rejected. Written on password
                         change so tokens held by other clients stop working.

Rows carry expires_at (epoch seconds). Once a row's expires_at has passed,
every token it could reject has expired on its own, so purge_expired()
deletes it. The table never grows beyond the tokens issued in one TTL window.

iat has one-second resolution. A token issued in the same second as a cutoff
is not caught by the cutoff; the password-change flow revokes its own token by
jti to cover the common case.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger("tokengate.auth")

_metadata = MetaData()

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("jti", String(64), primary_key=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("expires_at", Float, nullable=False),
)

_user_token_cutoffs = Table(
    "user_token_cutoffs",
    _metadata,
    Column("user_id", Integer, primary_key=True),
    Column("not_before", Integer, nullable=False),
    Column("expires_at", Float, nullable=False),
)


class RevocationStore:
    """Persisted revocation list.

    Usage:
        revocations = RevocationStore("sqlite:///tokengate.db")
        revocations.revoke(claims["jti"], claims["user_id"], claims["exp"])
        revocations.is_revoked(claims)    # True
        revocations.purge_expired()       # call periodically
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        _metadata.create_all(self.engine)

    def revoke(self, jti: str, user_id: int, expires_at: float) -> None:
        """Deny a single token until its own expiry. Idempotent.

        The jti primary key decides: a second revoke of the same token, from
        this call or a concurrent one, hits IntegrityError and is a no-op.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(_revoked_tokens.insert().values(jti=jti, user_id=user_id, expires_at=float(expires_at)))
                conn.commit()
        except IntegrityError:
            logger.debug("Token jti=%s already revoked", jti)
            return
        logger.info("Revoked token jti=%s user_id=%s", jti, user_id)

    def revoke_all_before(self, user_id: int, not_before: float, max_token_ttl: int) -> None:
        """Deny every token for user_id issued before not_before (epoch seconds).

        max_token_ttl bounds how long the cutoff must be kept: after
        not_before + max_token_ttl no token it covers can still be unexpired.

        Update-then-insert. If a concurrent call inserts the row between the
        two, the insert fails on the user_id key and the update is retried
        against that row. A cutoff never moves backwards.
        """
        cutoff = int(not_before)
        values = {"not_before": cutoff, "expires_at": float(cutoff + max_token_ttl)}
        advance = (
            _user_token_cutoffs.update()
            .where(_user_token_cutoffs.c.user_id == user_id)
            .where(_user_token_cutoffs.c.not_before <= cutoff)
            .values(**values)
        )
        with self.engine.connect() as conn:
            if conn.execute(advance).rowcount == 0:
                try:
                    conn.execute(_user_token_cutoffs.insert().values(user_id=user_id, **values))
                except IntegrityError:
                    conn.rollback()
                    conn.execute(advance)
            conn.commit()
        logger.info("Revoked all tokens issued before %d for user_id=%s", cutoff, user_id)

    def is_revoked(self, claims: dict[str, Any]) -> bool:
        """Return True if the verified claims are denied by either list."""
        with self.engine.connect() as conn:
            if conn.execute(
                select(_revoked_tokens.c.jti).where(_revoked_tokens.c.jti == claims.get("jti"))
            ).scalar() is not None:
                return True
            not_before = conn.execute(
                select(_user_token_cutoffs.c.not_before).where(_user_token_cutoffs.c.user_id == claims.get("user_id"))
            ).scalar()
        if not_before is None:
            return False
        return int(claims.get("iat", 0)) < not_before

    def purge_expired(self) -> int:
        """Delete entries that can no longer match an unexpired token. Returns rows removed."""
        now = time.time()
        with self.engine.connect() as conn:
            tokens = conn.execute(_revoked_tokens.delete().where(_revoked_tokens.c.expires_at < now))
            cutoffs = conn.execute(_user_token_cutoffs.delete().where(_user_token_cutoffs.c.expires_at < now))
            conn.commit()
        return tokens.rowcount + cutoffs.rowcount

    def close(self) -> None:
        self.engine.dispose()
