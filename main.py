#!/usr/bin/env python3
"""
User API -- CRUD service for user records with Basic or bearer-token auth.

Usage:
  python main.py serve
  python main.py serve --port 8080 --reload
  python main.py create-user --name "Ada Lovelace" --age 36 --email ada@example.com --password s3cret

Environment variables:
  DATABASE_URL  Required. SQLAlchemy URL of the user store, e.g. sqlite:///users.db
  SECRET_KEY    Required. At least 32 characters; signs bearer tokens.
  PORT          Optional bind port (default 5000).
  AUTH_MODE     basic (default), bearer or none -- what protects /users.
"""

import argparse
import logging
import sys
from typing import Optional

from pydantic import ValidationError

logger = logging.getLogger("userapi.cli")


def _load_settings():
    """Return Settings, or None after logging why they are unusable."""
    from core.config import get_settings

    try:
        return get_settings()
    except ValidationError as exc:
        for err in exc.errors():
            logger.error("Configuration error: %s", err["msg"])
        return None


def _serve(args: argparse.Namespace) -> int:
    settings = _load_settings()
    if settings is None:
        return 1

    import uvicorn

    host = args.host or settings.host
    port = args.port or settings.port
    logger.info("Server running on http://localhost:%d", port)
    logger.info("Swagger UI at     http://localhost:%d/api-docs", port)
    uvicorn.run("api.main:app", host=host, port=port, reload=args.reload, log_level=settings.log_level.lower())
    return 0


def _create_user(args: argparse.Namespace) -> int:
    from sqlalchemy.exc import IntegrityError

    from auth.models import User
    from auth.passwords import MAX_PASSWORD_BYTES, password_too_long
    from auth.store import UserStore

    if password_too_long(args.password):
        logger.error("Password must be at most %d bytes in UTF-8.", MAX_PASSWORD_BYTES)
        return 1

    settings = _load_settings()
    if settings is None:
        return 1

    store = UserStore(settings.database_url)
    try:
        user_id = store.create_user(User(name=args.name, age=args.age, email=args.email), password=args.password)
    except IntegrityError:
        logger.error("A user with email %s already exists.", args.email)
        return 1
    finally:
        store.close()
    print(user_id)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="user-api",
        description="CRUD service for user records with Basic or bearer-token authentication.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  DATABASE_URL=sqlite:///users.db SECRET_KEY=... python main.py serve
  python main.py serve --host 127.0.0.1 --port 8080 --reload
  python main.py create-user --name "John Smith" --age 30 --email john@example.com --password hunter22
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API under uvicorn")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: PORT or 5000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Insert a user record directly into the store")
    create.add_argument("--name", required=True)
    create.add_argument("--age", type=int, required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--password", required=True)
    create.set_defaults(func=_create_user)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
