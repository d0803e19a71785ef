"""Command-line interface for the HocTap API service."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

import httpx

from hoctap.config import Settings, load_settings
from hoctap.database import Database, StorageError
from hoctap.repository import UserRepository

logger = logging.getLogger("hoctap.main")

KEEP_ALIVE_TIMEOUT = 60


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="HocTap API utilities")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML settings file (default: HOCTAP_CONFIG or ./config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API and dashboard")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: SERVER_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: SERVER_PORT)")
    serve_parser.add_argument(
        "--no-seed",
        dest="seed",
        action="store_false",
        default=None,
        help="Do not insert the sample users on startup",
    )

    subparsers.add_parser("init-db", help="Connect to the database and create the users table")
    subparsers.add_parser("seed", help="Insert the sample users when the table is empty")
    subparsers.add_parser("users", help="Print every stored user")

    health_parser = subparsers.add_parser("health", help="Query the health endpoint of a running service")
    health_parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of the service (default: http://localhost:SERVER_PORT)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "seed", "users", "health"}

    # Global options may precede the command; anything unknown is treated as serve options.
    global_args: list[str] = []
    while args_list and args_list[0] == "--config" and len(args_list) > 1:
        global_args.extend(args_list[:2])
        args_list = args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*global_args, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*global_args, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*global_args, *args_list])


def _initialise_database(settings: Settings) -> Database:
    database = Database.from_settings(settings)
    database.initialize()
    return database


def _serve(settings: Settings, *, host: str | None, port: int | None, seed: bool | None) -> None:
    from hoctap.service import create_app
    import uvicorn

    bind_host = host or settings.server_host
    bind_port = port or settings.server_port

    app = create_app(settings, seed=seed)

    logger.info("HocTap API server starting on http://%s:%s", bind_host, bind_port)
    logger.info("Dashboard: http://localhost:%s/  Users API: http://localhost:%s/api/users", bind_port, bind_port)
    uvicorn.run(
        app,
        host=bind_host,
        port=bind_port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=KEEP_ALIVE_TIMEOUT,
    )


def _list_users(repository: UserRepository) -> None:
    users = repository.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  Updated")
    print("-" * 84)
    for user in users:
        updated = user.updated_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {updated}")


def _check_health(settings: Settings, service_url: str | None) -> int:
    base_url = service_url or f"http://localhost:{settings.server_port}"
    endpoint = base_url.rstrip("/") + "/health"

    try:
        response = httpx.get(endpoint, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact service at {endpoint}: {exc}")
        return 1

    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return 1

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return 1

    data = payload.get("data") or {}
    print(f"API: {data.get('status', 'unknown')} (version {data.get('version', '?')})")
    print(f"Database: {data.get('database', 'unknown')}")
    return 0 if data.get("database") == "healthy" else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings(args.config)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port, seed=args.seed)
        return 0
    if args.command == "health":
        return _check_health(settings, args.service_url)

    try:
        database = _initialise_database(settings)
    except StorageError as exc:
        logger.error("Failed to initialize database: %s", exc)
        return 1

    try:
        repository = UserRepository(database)
        if args.command == "init-db":
            print("Database initialisation complete.")
        elif args.command == "seed":
            repository.seed_defaults()
            print(f"Seeding complete; {repository.count_users()} user(s) stored.")
        elif args.command == "users":
            _list_users(repository)
    except StorageError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        database.shutdown()

    return 0


if __name__ == "__main__":
    sys.exit(main())
