from __future__ import annotations

from typing import List, Optional, Tuple

import anyio
import pytest
from fastapi import HTTPException
from starlette.requests import Request

from tubedesk.config import AppConfig
from tubedesk.database import Database
from tubedesk.security import (
    API_KEY_HEADER,
    INIT_DATA_HEADER,
    Authenticator,
    SessionCookieStrategy,
    TelegramInitDataStrategy,
    build_authenticator,
    client_api_key,
)
from tubedesk.sessions import SessionTokens


def _request(headers: Optional[List[Tuple[str, str]]] = None) -> Request:
    raw = [(name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in headers or []]
    return Request({"type": "http", "method": "GET", "path": "/", "query_string": b"", "headers": raw})


class StaticStrategy:
    def __init__(self, user) -> None:
        self.user = user
        self.calls = 0

    async def authenticate(self, request: Request):
        self.calls += 1
        return self.user


def test_first_resolving_strategy_wins() -> None:
    first = StaticStrategy(None)
    second = StaticStrategy("second-user")
    third = StaticStrategy("third-user")
    authenticator = Authenticator([first, second, third])

    assert anyio.run(authenticator.resolve, _request()) == "second-user"
    assert (first.calls, second.calls, third.calls) == (1, 1, 0)


def test_unresolved_request_is_forbidden() -> None:
    authenticator = Authenticator([StaticStrategy(None)])
    with pytest.raises(HTTPException) as excinfo:
        anyio.run(authenticator, _request())
    assert excinfo.value.status_code == 403
    assert excinfo.value.detail == "Forbidden"


def test_authenticator_needs_a_strategy() -> None:
    with pytest.raises(ValueError):
        Authenticator([])


def test_telegram_header_creates_the_user(database: Database, config: AppConfig, signed_init_data) -> None:
    strategy = TelegramInitDataStrategy(database, config)
    user = anyio.run(strategy.authenticate, _request([(INIT_DATA_HEADER, signed_init_data(user_id=42))]))

    assert user is not None
    assert user.external_id == "42"
    assert user.login_method == "telegram"


def test_bad_telegram_header_falls_through(database: Database, config: AppConfig, signed_init_data) -> None:
    strategy = TelegramInitDataStrategy(database, config.with_overrides(bot_token="999:other"))
    assert anyio.run(strategy.authenticate, _request([(INIT_DATA_HEADER, signed_init_data())])) is None
    assert anyio.run(strategy.authenticate, _request()) is None
    assert database.count_users() == 0


def test_session_cookie_resolves_and_creates_missing_user(database: Database, config: AppConfig) -> None:
    sessions = SessionTokens(config.session_secret)
    strategy = SessionCookieStrategy(database, sessions, config.session_cookie_name)
    token = sessions.issue("77", config.app_id, "Cookie User")

    user = anyio.run(strategy.authenticate, _request([("cookie", f"{config.session_cookie_name}={token}")]))

    assert user is not None
    assert user.external_id == "77"
    assert user.name == "Cookie User"
    assert user.login_method == "session"


def test_invalid_cookie_is_ignored(database: Database, config: AppConfig) -> None:
    sessions = SessionTokens(config.session_secret)
    strategy = SessionCookieStrategy(database, sessions, config.session_cookie_name)
    request = _request([("cookie", f"{config.session_cookie_name}=garbage")])
    assert anyio.run(strategy.authenticate, request) is None


def test_header_takes_precedence_over_cookie(database: Database, config: AppConfig, signed_init_data) -> None:
    sessions = SessionTokens(config.session_secret)
    authenticator = build_authenticator(database, sessions, config)
    token = sessions.issue("77", config.app_id, "Cookie User")
    request = _request(
        [
            (INIT_DATA_HEADER, signed_init_data(user_id=42)),
            ("cookie", f"{config.session_cookie_name}={token}"),
        ]
    )

    user = anyio.run(authenticator.resolve, request)
    assert user is not None
    assert user.external_id == "42"


def test_client_api_key_header() -> None:
    assert client_api_key(_request([(API_KEY_HEADER, "  AIza-client ")])) == "AIza-client"
    assert client_api_key(_request([(API_KEY_HEADER, "   ")])) is None
    assert client_api_key(_request()) is None
