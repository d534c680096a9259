"""Mint a session token for an existing user, for testing against a deployed API."""

from __future__ import annotations

import argparse
import sys

from tubedesk.application import build_database
from tubedesk.config import ConfigError, load_app_config, resolve_database_path
from tubedesk.sessions import SessionTokens


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Issue a tubedesk session token")
    parser.add_argument("external_id", help="Telegram user id of the account the token belongs to")
    parser.add_argument(
        "--db-path",
        default=None,
        help="Override the database location (defaults to DATABASE_PATH or the repository data directory)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(list(argv) if argv is not None else None)

    try:
        config = load_app_config()
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    if args.db_path:
        config = config.with_overrides(database_path=resolve_database_path(args.db_path))

    database = build_database(config)
    user = database.get_user_by_external_id(args.external_id)
    if user is None:
        print(f"No user with id {args.external_id!r} found in {database.path}", file=sys.stderr)
        return 1

    sessions = SessionTokens(config.session_secret, ttl=config.session_ttl)
    token = sessions.issue(user.external_id, config.app_id, user.name or user.external_id)
    print(f"Session token for {user.external_id} (send as the {config.session_cookie_name} cookie):")
    print(token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
