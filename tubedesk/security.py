"""Request authentication for the tubedesk API."""

import logging
from typing import Optional, Protocol, Sequence

import anyio
from fastapi import HTTPException, Request, status

from .config import AppConfig
from .database import Database
from .errors import AuthenticationRejected, ValidationFailed
from .models import User
from .sessions import SessionTokens
from .telegram import authenticate_telegram_user

logger = logging.getLogger("tubedesk.security")

INIT_DATA_HEADER = "X-Telegram-Init-Data"
API_KEY_HEADER = "X-YouTube-Api-Key"
SESSION_LOGIN_METHOD = "session"


class AuthenticationStrategy(Protocol):
    """Resolve the caller from a request, or return ``None`` when not applicable."""

    async def authenticate(self, request: Request) -> Optional[User]:
        ...


class TelegramInitDataStrategy:
    """Authenticate from the signed init data a Mini-App sends in a header."""

    def __init__(self, database: Database, config: AppConfig) -> None:
        self._database = database
        self._config = config

    async def authenticate(self, request: Request) -> Optional[User]:
        init_data = request.headers.get(INIT_DATA_HEADER)
        if not init_data:
            return None
        try:
            return await anyio.to_thread.run_sync(
                lambda: authenticate_telegram_user(
                    self._database,
                    init_data,
                    self._config.bot_token,
                    max_age=self._config.init_data_max_age,
                )
            )
        except (AuthenticationRejected, ValidationFailed) as exc:
            logger.info("Rejected Telegram init data: %s", exc)
            return None


class SessionCookieStrategy:
    """Authenticate from the signed session token stored in the session cookie."""

    def __init__(self, database: Database, sessions: SessionTokens, cookie_name: str) -> None:
        self._database = database
        self._sessions = sessions
        self._cookie_name = cookie_name

    async def authenticate(self, request: Request) -> Optional[User]:
        identity = self._sessions.verify(request.cookies.get(self._cookie_name))
        if identity is None:
            return None

        def _resolve() -> Optional[User]:
            user = self._database.get_user_by_external_id(identity.external_id)
            if user is None:
                self._database.upsert_user(
                    identity.external_id,
                    name=identity.name,
                    login_method=SESSION_LOGIN_METHOD,
                )
            self._database.upsert_user(identity.external_id)
            return self._database.get_user_by_external_id(identity.external_id)

        return await anyio.to_thread.run_sync(_resolve)


class Authenticator:
    """Try each strategy in order; the first one that resolves a user wins."""

    def __init__(self, strategies: Sequence[AuthenticationStrategy]) -> None:
        if not strategies:
            raise ValueError("At least one authentication strategy must be provided")
        self._strategies = tuple(strategies)

    async def resolve(self, request: Request) -> Optional[User]:
        for strategy in self._strategies:
            user = await strategy.authenticate(request)
            if user is not None:
                return user
        return None

    async def __call__(self, request: Request) -> User:
        user = await self.resolve(request)
        if user is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user


def build_authenticator(database: Database, sessions: SessionTokens, config: AppConfig) -> Authenticator:
    return Authenticator(
        [
            TelegramInitDataStrategy(database, config),
            SessionCookieStrategy(database, sessions, config.session_cookie_name),
        ]
    )


def client_api_key(request: Request) -> Optional[str]:
    raw = request.headers.get(API_KEY_HEADER)
    if raw is None:
        return None
    cleaned = raw.strip()
    return cleaned or None


__all__ = [
    "API_KEY_HEADER",
    "AuthenticationStrategy",
    "Authenticator",
    "INIT_DATA_HEADER",
    "SessionCookieStrategy",
    "TelegramInitDataStrategy",
    "build_authenticator",
    "client_api_key",
]
