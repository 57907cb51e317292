#!/usr/bin/env python3
"""
Scribe -- operator commands for the session core.

Usage:
  python main.py check-config
  python main.py seed-roles
  python main.py create-admin --email admin@example.com --name "Site Admin"

Environment variables:
  DATABASE_URL         SQLAlchemy URL of the credential database (default sqlite:///scribe.db)
  JWT_SECRET           Required. Access-token signing secret.
  JWT_REFRESH_SECRET   Required. Refresh-token signing secret; must differ from JWT_SECRET.
  ADMIN_PASSWORD       Password for create-admin when --password is not given.

Every command loads Settings first, so a missing secret fails here exactly as
it would at API startup.
"""

import argparse
import getpass
import os
import sys

from pydantic import ValidationError

from auth.errors import AuthError
from auth.models import RoleCode
from auth.service import AuthService
from auth.store import CredentialStore
from core.config import Settings, get_settings


def _load_settings() -> Settings | None:
    try:
        return get_settings()
    except ValidationError as e:
        print("  [!] Configuration is invalid:")
        for err in e.errors():
            print(f"      - {err.get('msg')}")
        return None


def cmd_check_config(settings: Settings) -> int:
    print("Configuration OK.")
    print(f"  database:          {settings.database_url}")
    print(f"  access ttl:        {settings.jwt_expires_in}")
    print(f"  refresh ttl:       {settings.jwt_refresh_expires_in}")
    print(f"  refresh store ttl: {settings.jwt_refresh_expires_days} day(s)")
    print(f"  bcrypt rounds:     {settings.bcrypt_salt_rounds}")
    print(f"  default role:      {settings.default_role_code}")
    return 0


def cmd_seed_roles(settings: Settings) -> int:
    store = CredentialStore(settings.database_url)
    try:
        created = store.seed_roles()
    finally:
        store.close()
    print(f"Roles seeded ({created} created).")
    return 0


def cmd_create_admin(settings: Settings, email: str, name: str, password: str | None) -> int:
    """Register an account through the normal path, then promote it to ADMIN.

    Going through AuthService.register() keeps normalization and the password
    policy identical to self-registration.
    """
    password = password or os.environ.get("ADMIN_PASSWORD") or getpass.getpass("Admin password: ")
    store = CredentialStore(settings.database_url)
    try:
        store.seed_roles()
        service = AuthService(settings, store)
        try:
            result = service.register(name, email, password)
        except AuthError as e:
            print(f"  [!] {e.message}")
            return 1
        # The registration session is not handed to anyone.
        service.logout(result.user.id)
        if not store.update_role(result.user.id, RoleCode.ADMIN):
            print(f"  [!] Could not promote {result.user.email} to ADMIN; it is still a {result.user.role.value}.")
            return 1
    finally:
        store.close()
    print(f"Admin created: {result.user.email} (id: {result.user.id})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="scribe",
        description="Operator commands for the Scribe session core.",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.add_parser("check-config", help="Validate configuration and print the effective values")
    sub.add_parser("seed-roles", help="Create the ADMIN and BLOGGER roles if missing")
    admin = sub.add_parser("create-admin", help="Create an administrator account")
    admin.add_argument("--email", required=True)
    admin.add_argument("--name", required=True)
    admin.add_argument("--password", default=None, help="Defaults to $ADMIN_PASSWORD or an interactive prompt")
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    settings = _load_settings()
    if settings is None:
        return 1

    if args.command == "check-config":
        return cmd_check_config(settings)
    if args.command == "seed-roles":
        return cmd_seed_roles(settings)
    return cmd_create_admin(settings, args.email, args.name, args.password)


if __name__ == "__main__":
    sys.exit(main())
