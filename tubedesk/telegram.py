"""Telegram Mini-App init-data verification and identity resolution."""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from urllib.parse import parse_qsl

from .database import Database
from .errors import AuthenticationRejected, ValidationFailed
from .models import Language, User

logger = logging.getLogger("tubedesk.telegram")

LOGIN_METHOD = "telegram"


@dataclass(frozen=True)
class TelegramIdentity:
    """Identity claim extracted from verified init data."""

    external_id: str
    name: str
    language_code: Optional[str] = None


def build_data_check_string(fields: Mapping[str, str]) -> str:
    """Render ``fields`` sorted by key as ``key=value`` lines."""

    return "\n".join(f"{key}={fields[key]}" for key in sorted(fields))


def compute_init_data_hash(data_check_string: str, bot_token: str) -> str:
    secret = hashlib.sha256(bot_token.encode("utf-8")).digest()
    return hmac.new(secret, data_check_string.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_init_data(
    init_data: str,
    bot_token: str,
    *,
    max_age: Optional[int] = None,
    now: Optional[float] = None,
) -> Dict[str, str]:
    """Validate a signed init-data query string and return its fields without ``hash``.

    Raises :class:`AuthenticationRejected` when the hash is missing or does not
    match, or when ``max_age`` is given and ``auth_date`` is older than it.
    """

    if not bot_token:
        raise AuthenticationRejected("Telegram bot token is not configured")
    if not init_data:
        raise AuthenticationRejected("Invalid initData: payload is empty")

    fields: Dict[str, str] = {}
    received_hash: Optional[str] = None
    for key, value in parse_qsl(init_data, keep_blank_values=True):
        if key == "hash":
            received_hash = value
            continue
        fields[key] = value

    if not received_hash:
        raise AuthenticationRejected("Invalid initData: hash is missing")

    calculated = compute_init_data_hash(build_data_check_string(fields), bot_token)
    if not hmac.compare_digest(calculated.encode("ascii"), received_hash.encode("utf-8")):
        raise AuthenticationRejected("Invalid initData: hash check failed")

    if max_age is not None:
        try:
            auth_date = int(fields["auth_date"])
        except (KeyError, ValueError) as exc:
            raise AuthenticationRejected("Invalid initData: auth_date is missing") from exc
        current = time.time() if now is None else now
        if current - auth_date > max_age:
            raise AuthenticationRejected("Invalid initData: payload has expired")

    return fields


def parse_telegram_identity(fields: Mapping[str, str]) -> TelegramIdentity:
    raw = fields.get("user") or fields.get("receiver")
    if not raw:
        raise ValidationFailed("Invalid initData: user data is missing")

    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise ValidationFailed("Invalid initData: user data is not valid JSON") from exc

    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid initData: user data must be an object")

    user_id = payload.get("id")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise ValidationFailed("Invalid initData: user id must be numeric")

    first_name = payload.get("first_name")
    if not isinstance(first_name, str) or not first_name:
        raise ValidationFailed("Invalid initData: first_name is missing")

    last_name = payload.get("last_name")
    name = f"{first_name} {last_name}" if isinstance(last_name, str) and last_name else first_name

    language_code = payload.get("language_code")
    return TelegramIdentity(
        external_id=str(user_id),
        name=name,
        language_code=language_code if isinstance(language_code, str) else None,
    )


def _preferred_language(language_code: Optional[str]) -> Optional[Language]:
    if not language_code:
        return None
    primary = language_code.split("-", 1)[0].lower()
    if primary == "ru":
        return "ru"
    if primary == "en":
        return "en"
    return None


def authenticate_telegram_user(
    database: Database,
    init_data: str,
    bot_token: str,
    *,
    max_age: Optional[int] = None,
) -> User:
    """Verify ``init_data`` and return the matching user, creating it on first sign-in."""

    identity = parse_telegram_identity(verify_init_data(init_data, bot_token, max_age=max_age))

    created = database.get_user_by_external_id(identity.external_id) is None
    if created:
        database.upsert_user(
            identity.external_id,
            name=identity.name,
            email=None,
            login_method=LOGIN_METHOD,
        )
        logger.info("Created user %s from Telegram sign-in", identity.external_id)

    database.upsert_user(identity.external_id)

    user = database.get_user_by_external_id(identity.external_id)
    if user is None:
        raise RuntimeError("Failed to create or retrieve user")

    language = _preferred_language(identity.language_code)
    if created and language is not None:
        database.set_language(user.id, language)
    return user


__all__ = [
    "LOGIN_METHOD",
    "TelegramIdentity",
    "authenticate_telegram_user",
    "build_data_check_string",
    "compute_init_data_hash",
    "parse_telegram_identity",
    "verify_init_data",
]
