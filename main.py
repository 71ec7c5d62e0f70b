#!/usr/bin/env python3
"""
PriceTracker auth -- operator command line.

Usage:
  python main.py hash-password
  python main.py create-user alice alice@example.com
  python main.py create-user bob bob@example.com --inactive
  python main.py set-active bob --enable
  python main.py inspect-token eyJhbGciOi...

Passwords are always read interactively (getpass) so they never appear in
shell history or the process list.

Environment variables:
  SECRET_KEY, JWT_ISSUER, JWT_AUDIENCE, DATABASE_URL -- see core/config.py.
"""

import argparse
import getpass
import json
import sys

from auth.errors import DuplicateIdentityError, InvalidInputError
from auth.models import Identity
from auth.passwords import MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH, PasswordHasher
from auth.store import IdentityStore
from auth.tokens import TokenValidator
from core.config import get_settings


def _read_password(confirm: bool = True) -> str:
    """Prompt for a new password. Raises InvalidInputError if it breaks the length policy."""
    password = getpass.getpass("Password: ")
    if not password.strip():
        raise InvalidInputError("Password must not be blank.")
    if not MIN_PASSWORD_LENGTH <= len(password) <= MAX_PASSWORD_LENGTH:
        raise InvalidInputError(f"Password must be {MIN_PASSWORD_LENGTH} to {MAX_PASSWORD_LENGTH} characters.")
    if confirm and getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def cmd_hash_password(args: argparse.Namespace) -> int:
    """Print the stored-format hash for an interactively entered password."""
    try:
        print(PasswordHasher().hash(_read_password()))
    except InvalidInputError as exc:
        print(f"  [!] {exc}")
        return 1
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    """Insert a new identity into the configured store."""
    hasher = PasswordHasher()
    try:
        secret_hash = hasher.hash(_read_password())
    except InvalidInputError as exc:
        print(f"  [!] {exc}")
        return 1

    store = IdentityStore(get_settings().database_url)
    try:
        identity_id = store.create_identity(
            Identity(username=args.username, email=args.email, secret_hash=secret_hash, is_active=not args.inactive)
        )
    except DuplicateIdentityError as exc:
        print(f"  [!] {exc}.")
        return 1
    finally:
        store.close()

    state = "inactive" if args.inactive else "active"
    print(f"  Created identity {identity_id} ({args.username}, {state}).")
    return 0


def cmd_set_active(args: argparse.Namespace) -> int:
    """Enable or disable an existing identity, looked up by username or email."""
    store = IdentityStore(get_settings().database_url)
    try:
        identity = store.get_by_identifier(args.identifier)
        if identity is None:
            print(f"  [!] No identity matches '{args.identifier}'.")
            return 1
        store.set_active(identity.id, args.enable)
    finally:
        store.close()

    state = "enabled" if args.enable else "disabled"
    print(f"  Identity {identity.id} ({identity.username}) {state}.")
    return 0


def cmd_inspect_token(args: argparse.Namespace) -> int:
    """Validate a token against the configured key and print its claims."""
    outcome = TokenValidator.from_settings(get_settings()).validate(args.token)
    if not outcome.valid:
        print(f"  [!] Invalid token: {outcome.reason}")
        return 1
    claims = outcome.claims
    print(
        json.dumps(
            {
                "sub": claims.subject,
                "name": claims.name,
                "email": claims.email,
                "jti": claims.jti,
                "iss": claims.issuer,
                "aud": claims.audience,
                "iat": claims.issued_at.isoformat() if claims.issued_at else None,
                "exp": claims.expires_at.isoformat(),
            },
            indent=2,
        )
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pricetracker-auth",
        description="Manage PriceTracker identities and inspect access tokens.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py hash-password
  python main.py create-user alice alice@example.com
  DATABASE_URL=sqlite:///auth.db python main.py create-user bob bob@example.com --inactive
  python main.py set-active bob --enable
  python main.py inspect-token "$TOKEN"
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_hash = sub.add_parser("hash-password", help="Print a PBKDF2 hash for a password")
    p_hash.set_defaults(func=cmd_hash_password)

    p_create = sub.add_parser("create-user", help="Create an identity in the store")
    p_create.add_argument("username", help="Login name (matched case-insensitively)")
    p_create.add_argument("email", help="Email address (also usable as the login identifier)")
    p_create.add_argument("--inactive", action="store_true", help="Create the identity disabled")
    p_create.set_defaults(func=cmd_create_user)

    p_active = sub.add_parser("set-active", help="Enable or disable an identity")
    p_active.add_argument("identifier", help="Username or email of the identity")
    toggle = p_active.add_mutually_exclusive_group(required=True)
    toggle.add_argument("--enable", dest="enable", action="store_true", help="Allow the identity to log in")
    toggle.add_argument("--disable", dest="enable", action="store_false", help="Refuse logins for the identity")
    p_active.set_defaults(func=cmd_set_active)

    p_inspect = sub.add_parser("inspect-token", help="Validate an access token and print its claims")
    p_inspect.add_argument("token", help="Encoded JWT")
    p_inspect.set_defaults(func=cmd_inspect_token)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
