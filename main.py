#!/usr/bin/env python3
"""
Gatekeeper -- user registration, login with account lockout, and user
directory management over HTTP.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py create-admin --username root --email root@example.com

Environment variables (or .env):
  SECRET_KEY    Required. JWT signing key, at least 32 characters.
  DATABASE_URL  SQLAlchemy URL of the account store. Defaults to a SQLite
                file next to the auth package.

Registration over HTTP always creates role "user". create-admin is the way
to bootstrap the first administrator.
"""

import argparse
import sys
from getpass import getpass

import pydantic

from api.models import RegisterRequest
from core.config import get_settings
from core.errors import ConfigurationError, ServiceError


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    get_settings()  # fail before uvicorn starts if configuration is invalid
    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _create_admin(args: argparse.Namespace) -> int:
    from auth.service import register_account
    from auth.store import AccountStore

    password = args.password or getpass("Password: ")
    if not args.password and getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        return 1

    # Same shape rules as POST /api/auth/register.
    try:
        body = RegisterRequest(username=args.username, email=args.email, password=password)
    except pydantic.ValidationError as e:
        for err in e.errors():
            print(f"  [!] {'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
        return 1

    settings = get_settings()
    store = AccountStore(settings.database_url, timeout=settings.store_timeout_seconds)
    try:
        account = register_account(store, body.username, body.email, body.password, role="admin")
    except ServiceError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        store.close()

    print(f"  Admin '{account.username}' created (id {account.id}).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gatekeeper -- account service with login lockout.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_serve)

    admin = sub.add_parser("create-admin", help="Create an administrator account")
    admin.add_argument("--username", required=True)
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", help="Password (prompted when omitted; avoid in shell history)")
    admin.set_defaults(func=_create_admin)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    try:
        return args.func(args)
    except ConfigurationError as e:
        print(f"  [!] Configuration error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
