"""
Privileged bootstrap and maintenance commands.

These run with direct database access and are the only way to create
the first admin account.
"""

import argparse
import asyncio
import getpass
import os
import sys
from typing import Optional

from shapeflow.config import Settings, get_settings
from shapeflow.database import create_engine, create_sessionmaker, init_db
from shapeflow.errors import Conflict
from shapeflow.models import ROLE_ADMIN, generate_id
from shapeflow.passwords import hash_password
from shapeflow.schemas import PASSWORD_MIN_LENGTH
from shapeflow.sessions import SessionManager
from shapeflow.stores import CredentialStore, SessionStore


def _parse_args(description: str, argv=None, with_email: bool = True) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=description)
    if with_email:
        parser.add_argument(
            "--email",
            default=None,
            help="Account email (defaults to ADMIN_EMAIL or admin@shapeflow.com)",
        )
    parser.add_argument(
        "--database-url",
        dest="database_url",
        default=None,
        help="SQLAlchemy async URL (defaults to DATABASE_URL)",
    )
    return parser.parse_args(argv)


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})
    return settings


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < PASSWORD_MIN_LENGTH:
            print(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def _password_from_env_or_prompt(settings: Settings) -> str:
    password = os.getenv("ADMIN_PASSWORD") or settings.admin_password
    if password:
        if len(password) < PASSWORD_MIN_LENGTH:
            raise SystemExit(f"ADMIN_PASSWORD must be at least {PASSWORD_MIN_LENGTH} characters long.")
        return password
    return prompt_for_password()


async def create_admin(settings: Settings, email: str, password: str) -> int:
    engine = create_engine(settings)
    try:
        await init_db(engine)
        credentials = CredentialStore(create_sessionmaker(engine))

        existing = await credentials.get_by_email(email)
        if existing is not None:
            if existing.role == ROLE_ADMIN:
                print(f"User {existing.email} is already an admin.")
                return 0
            await credentials.update_role(existing.id, ROLE_ADMIN)
            print(f"Promoted {existing.email} to admin.")
            return 0

        try:
            user = await credentials.create_user(generate_id(), email, hash_password(password), ROLE_ADMIN)
        except Conflict as exc:
            print(f"Error: {exc.message}", file=sys.stderr)
            return 1
        print(f"Created admin {user.email} (id {user.id}).")
        print("Change the password after the first login.")
        return 0
    finally:
        await engine.dispose()


async def reset_password(settings: Settings, email: str, password: str) -> int:
    engine = create_engine(settings)
    try:
        await init_db(engine)
        sessionmaker = create_sessionmaker(engine)
        credentials = CredentialStore(sessionmaker)
        manager = SessionManager(SessionStore(sessionmaker), credentials, settings)

        user = await credentials.get_by_email(email)
        if user is None:
            print(f"Error: no user with email {email}.", file=sys.stderr)
            return 1
        if user.role != ROLE_ADMIN:
            print(f"Warning: {user.email} has role {user.role!r}, not admin. Continuing.", file=sys.stderr)

        await credentials.update_password(user.id, hash_password(password))
        count = await manager.invalidate_user_sessions(user.id)
        print(f"Password updated for {user.email}; {count} session(s) logged out.")
        return 0
    finally:
        await engine.dispose()


async def purge_sessions(settings: Settings) -> int:
    engine = create_engine(settings)
    try:
        await init_db(engine)
        sessionmaker = create_sessionmaker(engine)
        manager = SessionManager(SessionStore(sessionmaker), CredentialStore(sessionmaker), settings)
        count = await manager.delete_expired_sessions()
        print(f"Removed {count} expired session(s).")
        return 0
    finally:
        await engine.dispose()


def _email(args: argparse.Namespace, settings: Settings) -> str:
    return (args.email or os.getenv("ADMIN_EMAIL") or settings.admin_email).strip().lower()


def create_admin_main(argv: Optional[list] = None) -> int:
    args = _parse_args("Create (or promote) a ShapeFlow admin account", argv)
    settings = _settings_for(args)
    email = _email(args, settings)
    password = _password_from_env_or_prompt(settings)
    return asyncio.run(create_admin(settings, email, password))


def reset_admin_password_main(argv: Optional[list] = None) -> int:
    args = _parse_args("Reset the password of a ShapeFlow account", argv)
    settings = _settings_for(args)
    email = _email(args, settings)
    password = _password_from_env_or_prompt(settings)
    return asyncio.run(reset_password(settings, email, password))


def purge_sessions_main(argv: Optional[list] = None) -> int:
    args = _parse_args("Delete expired ShapeFlow sessions", argv, with_email=False)
    return asyncio.run(purge_sessions(_settings_for(args)))


if __name__ == "__main__":
    raise SystemExit(create_admin_main())
