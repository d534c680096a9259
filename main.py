"""Command-line interface for the tubedesk service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from tubedesk.application import build_database
from tubedesk.config import AppConfig, ConfigError, load_app_config, load_config
from tubedesk.database import Database

logger = logging.getLogger("tubedesk.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="tubedesk Mini-App backend")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: $TUBEDESK_CONFIG or config/tubedesk.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the database tables and exit")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for the HTTP API (default: 3000)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db"}

    leading = []
    while args_list and args_list[0] == "--config" and len(args_list) > 1:
        leading.extend(args_list[:2])
        args_list = args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*leading, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*leading, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*leading, *args_list])


def _load_config(config_path: str | None) -> AppConfig:
    try:
        if config_path:
            return load_config(Path(config_path).expanduser())
        return load_app_config()
    except (ConfigError, OSError) as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc


def _initialise_database(config: AppConfig) -> Database:
    database = build_database(config)
    logger.info("Database initialised at %s", database.path)
    return database


def _serve(*, config: AppConfig, database: Database, host: str, port: int) -> None:
    from tubedesk.application import create_application
    import uvicorn

    logger.info("Starting tubedesk API on http://%s:%s", host, port)

    app = create_application(config, database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    config = _load_config(args.config)
    database = _initialise_database(config)

    if args.command == "serve":
        _serve(config=config, database=database, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")
        print(f"{database.count_users()} user(s) registered.")


if __name__ == "__main__":
    main()
