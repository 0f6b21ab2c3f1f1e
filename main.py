#!/usr/bin/env python3
"""
Teamgate -- Users, teams and role-based access control over HTTP.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 9000
  python main.py serve --reload
  python main.py create-admin --email root@acme.io --password 's3cretpass' \\
                              --first-name Ada --last-name Lovelace

Environment variables (see core/config.py):
  DATABASE_URL        SQLAlchemy URL. Required unless DEBUG=true.
  JWT_SECRET          Signing key, at least 32 characters. Required unless DEBUG=true.
  JWT_TTL             Access token lifetime, e.g. "24h" (default).
  REFRESH_TOKEN_TTL   Refresh token lifetime, e.g. "168h" (default).
  APP_PORT            Port used by "serve" when --port is not given (default 8080).
  DEBUG               "true" enables dev defaults (generated secret, local SQLite).

create-admin goes through the regular registration workflow, so it only
succeeds while the organization has no admin yet.
"""

import argparse
import logging
import sys

from core.config import get_settings
from core.errors import AppError

logger = logging.getLogger("teamgate.cli")


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    port = args.port if args.port is not None else settings.app_port
    uvicorn.run("api.main:app", host=args.host, port=port, reload=args.reload)
    return 0


def _create_admin(args: argparse.Namespace) -> int:
    from auth.service import AuthService, RegisterData
    from org.models import Role
    from org.store import OrgStore

    settings = get_settings()
    store = OrgStore(settings.database_url)
    try:
        user = AuthService(store, settings).register(
            RegisterData(
                email=args.email,
                password=args.password,
                first_name=args.first_name,
                last_name=args.last_name,
                role=Role.admin,
            )
        )
    except AppError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()
    print(f"  Admin created: id={user.id} email={user.email}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teamgate",
        description="Users, teams and role-based access control over HTTP.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: APP_PORT)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_serve)

    admin = sub.add_parser("create-admin", help="Create the first admin account")
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", required=True)
    admin.add_argument("--first-name", required=True)
    admin.add_argument("--last-name", required=True)
    admin.set_defaults(func=_create_admin)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = _build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
