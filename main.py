#!/usr/bin/env python3
"""
TokenGate operator CLI.

Self-registration may be restricted (REGISTRATION_ROLE_POLICY=force_user), so
the first admin account is created here, directly against the user store.

Usage:
  python main.py create-user --name "Ada" --email ada@example.com --role admin
  python main.py create-user --name "Bob" --email bob@example.com --password 'secret1'
  python main.py purge-revocations

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the user database (default: sqlite file next to the code).
  SECRET_KEY     Required unless DEBUG=true; see core/config.py.
  BCRYPT_ROUNDS  bcrypt cost factor used for the new password (default 10).
"""

import argparse
import getpass
import logging
import sys

from auth.errors import AuthError
from auth.models import Role
from auth.passwords import PasswordHasher
from auth.revocation import RevocationStore
from auth.store import UserStore
from core.config import get_settings


def _read_password(given: str | None) -> str | None:
    """Return the password from the flag, or prompt twice for it."""
    if given:
        return given
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.", file=sys.stderr)
        return None
    return first


def create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    password = _read_password(args.password)
    if password is None:
        return 1

    store = UserStore(
        settings.database_url,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        password_min_length=settings.password_min_length,
    )
    try:
        user = store.create_user(name=args.name, email=args.email, password=password, role=args.role)
    except AuthError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()

    print(f"  Created user '{user.email}' (id={user.id}) with role '{user.role}'.")
    return 0


def purge_revocations(args: argparse.Namespace) -> int:
    settings = get_settings()
    revocations = RevocationStore(settings.database_url)
    try:
        removed = revocations.purge_expired()
    finally:
        revocations.close()
    print(f"  Removed {removed} expired revocation entr{'y' if removed == 1 else 'ies'}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="TokenGate -- token authentication service administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a user account (e.g. the first admin).")
    create.add_argument("--name", required=True, help="Display name")
    create.add_argument("--email", required=True, help="Email address (login identifier)")
    create.add_argument(
        "--role",
        default=Role.user.value,
        choices=[r.value for r in Role],
        help="Account role (default: user)",
    )
    create.add_argument("--password", help="Password. Prompted for when omitted (preferred: keeps it out of shell history).")
    create.set_defaults(func=create_user)

    purge = sub.add_parser("purge-revocations", help="Delete revocation entries whose tokens have expired.")
    purge.set_defaults(func=purge_revocations)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # Store and revocation modules log under tokengate.*; show them on stderr.
    logging.basicConfig(level=logging.INFO, format="  %(levelname)s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
