"""
CLI management commands for websession.

Usage:
    python -m websession.cli.commands init-db
    python -m websession.cli.commands gc
    python -m websession.cli.commands set-password USERNAME
"""
from __future__ import annotations

import argparse
import getpass
import logging
import sys
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from websession.auth.methods import AuthMethod, PasswordPolicyError
from websession.auth.service import AuthService
from websession.core.settings import settings
from websession.core.site_config import ConfigError, SiteConfig
from websession.db.engine import SessionLocal, init_db
from websession.models import AuthMethodRow, User, UserType
from websession.session import RequestContext, SessionError, SessionHandler
from websession.utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def seed_database(db: Session) -> dict:
    """
    Insert the default settings, the anonymous user and a database auth
    method, skipping whatever already exists.

    Returns:
        Counts of what was added
    """
    config = SiteConfig(db)
    added_settings = config.seed_defaults()

    added_users = 0
    if db.get(User, settings.anonymous_user_id) is None:
        db.add(User(
            user_id=settings.anonymous_user_id,
            username="anonymous",
            user_type=UserType.BOT,
            created=int(time.time()),
        ))
        added_users += 1

    added_methods = 0
    if db.execute(select(AuthMethodRow.id)).first() is None:
        db.add(AuthMethodRow(module="database", priority=0, enabled=True))
        added_methods += 1

    db.commit()
    return {"settings": added_settings, "users": added_users, "auth_methods": added_methods}


def find_password_method(auth: AuthService, username: str) -> Optional[AuthMethod]:
    """
    The method that should store a new password for this user: the one
    the user last logged in with if it supports password changes,
    otherwise the first enabled method that does.
    """
    method = auth.get_user_authmethod(username)
    if method.capabilities().get("passchange"):
        return method

    for method_id in auth.methods.available_methods(active_only=True):
        candidate = auth.get_authmethod(method_id)
        if candidate is not None and candidate.capabilities().get("passchange"):
            return candidate
    return None


def cmd_init_db() -> None:
    """Create tables and seed defaults."""
    logger.info("Creating tables...")
    init_db()

    db = SessionLocal()
    try:
        summary = seed_database(db)
        logger.info(f"Database initialised: {summary}")
    except SQLAlchemyError as e:
        logger.error(f"Database initialisation failed: {e}")
        sys.exit(1)
    finally:
        db.close()


def cmd_gc() -> None:
    """Remove expired sessions now, regardless of the collection interval."""
    db = SessionLocal()
    try:
        site_config = SiteConfig(db)
        auth = AuthService(db, site_config)
        handler = SessionHandler(db, RequestContext(), auth, auth.config, site_config)
        if not handler.collect_garbage(force=True):
            logger.warning("Garbage collection was claimed by another process")
    except (ConfigError, SessionError, SQLAlchemyError) as e:
        logger.error(f"Garbage collection failed: {e}")
        sys.exit(1)
    finally:
        db.close()


def cmd_set_password(username: str) -> None:
    """Prompt for and store a new password for a user."""
    db = SessionLocal()
    try:
        auth = AuthService(db, SiteConfig(db))
        user = auth.get_user(username)
        if user is None:
            logger.error(f"Unknown user: {username}")
            sys.exit(1)

        method = find_password_method(auth, username)
        if method is None:
            logger.error("No enabled auth method supports password changes")
            sys.exit(1)

        password = getpass.getpass("New password: ")
        if password != getpass.getpass("Repeat password: "):
            logger.error("Passwords do not match")
            sys.exit(1)

        if not method.set_password(user.user_id, password):
            logger.error(f"Unable to set password for {username}")
            sys.exit(1)
        logger.info(f"Password updated for {username}")

    except PasswordPolicyError as e:
        for key, (required, actual) in sorted(e.failures.items()):
            logger.error(f"{key}: need {required}, got {actual}")
        sys.exit(1)
    except (ConfigError, SQLAlchemyError) as e:
        logger.error(f"Password update failed: {e}")
        sys.exit(1)
    finally:
        db.close()


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entrypoint."""
    setup_logging()

    parser = argparse.ArgumentParser(
        description="websession management commands",
        prog="python -m websession.cli.commands"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "init-db",
        help="Create tables and seed default settings, anonymous user and auth method"
    )
    subparsers.add_parser(
        "gc",
        help="Remove expired sessions now"
    )
    password_parser = subparsers.add_parser(
        "set-password",
        help="Set a user's password"
    )
    password_parser.add_argument("username")

    args = parser.parse_args(argv)

    if args.command == "init-db":
        cmd_init_db()
    elif args.command == "gc":
        cmd_gc()
    elif args.command == "set-password":
        cmd_set_password(args.username)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
