"""
FixRx Session Client Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, restores any persisted session and runs one
command.  Every subsystem is wired here; there are no module-level
globals.

Usage::

    python main.py status
    python main.py login --email a@b.com
    python main.py logout
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import getpass
import sys
from pathlib import Path
from typing import Optional, Sequence

from fixrx.auth import SessionManager
from fixrx.config import get_config
from fixrx.database import DatabaseManager
from fixrx.errors import FixRxError, SessionExpired
from fixrx.logger import StructuredLogger, get_logger
from fixrx.models.auth_models import AuthState
from fixrx.navigation import resolve_route
from fixrx.schema import initialize_schema
from fixrx.services import create_services
from fixrx.services.key_value_store import InMemoryKeyValueStore, KeyValueStore, SQLiteKeyValueStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fixrx", description="FixRx session client")
    parser.add_argument(
        "--ephemeral",
        action="store_true",
        help="keep credentials in memory only (nothing written to disk)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("status", help="restore the saved session and show where it lands")

    login = commands.add_parser("login", help="sign in with email and password")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="prompted for when omitted")

    commands.add_parser("logout", help="sign out and forget the saved session")
    return parser


def _describe(state: AuthState) -> str:
    who = state.user.email or state.user.id if state.user is not None else "-"
    lines = [
        f"phase:   {state.phase}",
        f"route:   {resolve_route(state)}",
        f"user:    {who}",
        f"role:    {state.role or '-'}",
        f"profile: {'yes' if state.has_profile else 'no'}",
    ]
    if state.error:
        lines.append(f"error:   {state.error}")
    return "\n".join(lines)


async def _run(args: argparse.Namespace, store: KeyValueStore, logger: StructuredLogger) -> int:
    config = get_config()
    session = SessionManager()
    services = create_services(store=store, config=config, session=session)
    auth = services["auth_service"]

    try:
        try:
            await auth.restore_session()
        except SessionExpired:
            logger.info("Saved session has expired; continuing signed out.")

        if args.command == "login":
            password: Optional[str] = args.password or getpass.getpass("Password: ")
            try:
                await auth.login(args.email, password)
            except FixRxError as exc:
                print(f"Login failed: {exc.message}", file=sys.stderr)
                print(_describe(auth.state))
                return 1
        elif args.command == "logout":
            await auth.logout()

        print(_describe(auth.state))
        return 0
    finally:
        auth.close()
        await services["api_client"].aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Application entry point: wire dependencies and run one command."""
    args = _build_parser().parse_args(argv)
    logger: StructuredLogger = get_logger("fixrx.main")
    logger.info("Starting FixRx session client...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    if args.ephemeral:
        return asyncio.run(_run(args, InMemoryKeyValueStore(), logger))

    # ------------------------------------------------------------------
    # 2. Local database + schema (idempotent)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        sqlite_path=Path(config.STORAGE_PATH),
        logger=StructuredLogger(name="fixrx.database"),
    )
    # db.close() is idempotent; this covers exits that bypass the finally.
    atexit.register(db.close)
    initialize_schema(db.sqlite, StructuredLogger(name="fixrx.schema"))

    # ------------------------------------------------------------------
    # 3. Run the command
    # ------------------------------------------------------------------
    store = SQLiteKeyValueStore(db=db, logger=StructuredLogger(name="fixrx.storage"))
    try:
        return asyncio.run(_run(args, store, logger))
    finally:
        db.close()
        logger.info("FixRx session client shut down.")


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
