"""Command-line interface for the userdb account store."""

from __future__ import annotations
import argparse
import json
import logging
import os
import sys
from getpass import getpass
from typing import Any, Sequence

import anyio

from userdb.config import StoreConfig, load_config, resolve_config_path
from userdb.errors import UserStoreError
from userdb.store import AccountStore

logger = logging.getLogger("userdb.main")

_MIN_PASSWORD_LENGTH = 12


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the account database (defaults to USERDB_PATH or data/userdb.sqlite3)",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the YAML configuration file (defaults to USERDB_CONFIG or config/userdb.yaml)",
    )

    parser = argparse.ArgumentParser(description="userdb account store utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", parents=[common], help="Create the account database")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for the API (default: 8000)")

    subparsers.add_parser("list-users", parents=[common], help="List every stored user")

    add_parser = subparsers.add_parser("add-user", parents=[common], help="Create a new user")
    add_parser.add_argument("email", help="Unique email address for the account")
    add_parser.add_argument("--data", default=None, help="JSON metadata stored with the account")

    delete_parser = subparsers.add_parser("delete-user", parents=[common], help="Delete a user")
    delete_parser.add_argument("email", help="Email address of the account to delete")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "list-users", "add-user", "delete-user"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_store_config(args: argparse.Namespace) -> StoreConfig:
    config_path = resolve_config_path(getattr(args, "config_path", None) or os.getenv("USERDB_CONFIG"))
    database_path = getattr(args, "db_path", None) or os.getenv("USERDB_PATH")
    return load_config(config_path, database_path=database_path)


def _serve(*, config: StoreConfig, host: str, port: int) -> None:
    from userdb.api import create_app
    import uvicorn

    logger.info("Starting account API on http://%s:%s", host, port)
    app = create_app(config=config)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {_MIN_PASSWORD_LENGTH} characters): ")
        if len(password) < _MIN_PASSWORD_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


async def _init_db(config: StoreConfig) -> None:
    async with AccountStore.open(config):
        pass
    print(f"Database initialisation complete: {config.database_path}")


async def _list_users(config: StoreConfig) -> None:
    async with AccountStore.open(config) as store:
        users = [user async for user in store.create_user_stream()]

    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'Email':<40}  {'Created':<25}  Modified")
    print("-" * 92)
    for user in users:
        created = user.created_date.strftime("%Y-%m-%d %H:%M:%S %Z")
        modified = user.modified_date.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.email:<40}  {created:<25}  {modified}")


async def _add_user(config: StoreConfig, email: str, password: str, data: Any) -> int:
    async with AccountStore.open(config) as store:
        try:
            user = await store.add_user(email, password, data)
        except (UserStoreError, ValueError) as exc:
            print(f"Failed to create user: {exc}", file=sys.stderr)
            return 1
    print(f"Created user <{user.email}>")
    return 0


async def _delete_user(config: StoreConfig, email: str) -> int:
    async with AccountStore.open(config) as store:
        try:
            await store.delete_user(email)
        except UserStoreError as exc:
            print(f"Failed to delete user: {exc}", file=sys.stderr)
            return 1
    print(f"Deleted user <{email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    config = _load_store_config(args)

    if args.command == "serve":
        _serve(config=config, host=args.host, port=args.port)
    elif args.command == "init-db":
        anyio.run(_init_db, config)
    elif args.command == "list-users":
        anyio.run(_list_users, config)
    elif args.command == "add-user":
        try:
            data = json.loads(args.data) if args.data is not None else None
        except ValueError:
            print("--data must be valid JSON", file=sys.stderr)
            return 2
        password = _prompt_for_password()
        if password is None:
            print("Aborted creating user.", file=sys.stderr)
            return 1
        return anyio.run(_add_user, config, args.email.strip(), password, data)
    elif args.command == "delete-user":
        return anyio.run(_delete_user, config, args.email.strip())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
