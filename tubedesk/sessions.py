"""Signed session tokens carried in the tubedesk session cookie."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .config import ONE_YEAR
from .models import SessionIdentity

ALGORITHM = "HS256"


class SessionTokens:
    """Issue and verify HS256 JWTs holding ``openId``, ``appId`` and ``name``."""

    def __init__(self, secret: str, *, ttl: timedelta = ONE_YEAR) -> None:
        if not secret:
            raise ValueError("A session secret must be configured")
        self._secret = secret
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def cookie_max_age(self) -> int:
        return int(self._ttl.total_seconds())

    def issue(
        self,
        external_id: str,
        app_id: str,
        name: str,
        *,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        expires_at = self._now() + (expires_in if expires_in is not None else self._ttl)
        claims = {
            "openId": external_id,
            "appId": app_id,
            "name": name,
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM, headers={"typ": "JWT"})

    def verify(self, token: Optional[str]) -> Optional[SessionIdentity]:
        """Return the identity in ``token``, or ``None`` for any missing or invalid token."""

        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp"]},
            )
        except jwt.PyJWTError:
            return None

        external_id = payload.get("openId")
        app_id = payload.get("appId")
        name = payload.get("name")
        if not all(isinstance(value, str) and value for value in (external_id, app_id, name)):
            return None

        return SessionIdentity(external_id=external_id, app_id=app_id, name=name)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["ALGORITHM", "SessionTokens"]
