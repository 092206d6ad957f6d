#!/usr/bin/env python3
"""
RBAC API -- administrative command line.

Usage:
  python main.py init-db
  python main.py create-admin admin@example.com --first-name Admin --last-name User
  python main.py roles

init-db creates the schema and seeds the default roles (admin, editor,
author, user). It is idempotent: existing roles are left untouched.

create-admin creates the first administrator. The password is read from
--password or prompted for interactively, never echoed.

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the credential store.
  SECRET_KEY    Not needed by these commands, but Settings validation still
                requires it unless DEBUG=true.
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from auth.tokens import MAX_PASSWORD_BYTES, hash_password
from core.config import get_settings


def create_admin(store: UserStore, email: str, password: str, first_name: str, last_name: str) -> User:
    """Create an active user holding the seeded admin role.

    Raises ValueError if the admin role is missing, the password is unusable,
    or the email is taken.
    """
    if len(password) < 6 or len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be 6 characters to {MAX_PASSWORD_BYTES} bytes long.")
    admin_role = store.get_role_by_name("admin")
    if admin_role is None:
        raise ValueError("The admin role does not exist. Run 'init-db' first.")
    try:
        return store.create_user(
            User(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role_id=admin_role.id,
            )
        )
    except IntegrityError as exc:
        raise ValueError(f"A user with email {email!r} already exists.") from exc


def _read_password(cli_value: Optional[str]) -> str:
    if cli_value:
        return cli_value
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise ValueError("Passwords do not match.")
    return first


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="rbac-api",
        description="Administrative commands for the RBAC API credential store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--database-url", metavar="URL", help="Override DATABASE_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and seed default roles")

    admin = sub.add_parser("create-admin", help="Create an administrator account")
    admin.add_argument("email")
    admin.add_argument("--first-name", default="Admin")
    admin.add_argument("--last-name", default="User")
    admin.add_argument("--password", help="Password (prompted if omitted)")

    sub.add_parser("roles", help="List roles with their permissions")

    args = parser.parse_args(argv)
    store = UserStore(args.database_url or get_settings().database_url)
    try:
        if args.command == "init-db":
            roles = store.list_roles()
            print(f"Database ready. {len(roles)} role(s): {', '.join(r.name for r in roles)}")

        elif args.command == "create-admin":
            try:
                user = create_admin(
                    store,
                    args.email,
                    _read_password(args.password),
                    args.first_name,
                    args.last_name,
                )
            except ValueError as exc:
                print(f"  [!] {exc}", file=sys.stderr)
                return 1
            print(f"Created admin user id={user.id} email={user.email}")

        elif args.command == "roles":
            for role in store.list_roles():
                print(f"{role.name:<12} users={role.user_count:<4} {', '.join(role.permissions) or '-'}")
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
