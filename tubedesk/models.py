"""Domain models persisted by the tubedesk backend."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

Role = Literal["user", "admin"]
Language = Literal["ru", "en"]

DEFAULT_LANGUAGE: Language = "en"


@dataclass(frozen=True)
class User:
    """Represents a user account keyed by a stable external identifier."""

    id: int
    external_id: str
    name: Optional[str]
    email: Optional[str]
    login_method: Optional[str]
    role: Role
    last_signed_in: datetime
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ApiKeyRecord:
    """A stored YouTube Data API credential. Only one per user is active."""

    id: int
    user_id: int
    encrypted_key: str
    iv: str
    is_active: bool
    last_validated: Optional[datetime]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class LanguagePreference:
    user_id: int
    language: Language


@dataclass(frozen=True)
class SessionIdentity:
    """Claims carried by a session token. Never persisted."""

    external_id: str
    app_id: str
    name: str


__all__ = [
    "ApiKeyRecord",
    "DEFAULT_LANGUAGE",
    "Language",
    "LanguagePreference",
    "Role",
    "SessionIdentity",
    "User",
]
