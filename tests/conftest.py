from __future__ import annotations

import json
import sys
import time
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tubedesk.config import AppConfig
from tubedesk.database import Database
from tubedesk.telegram import build_data_check_string, compute_init_data_hash

BOT_TOKEN = "123456:test-bot-token"
SESSION_SECRET = "tests-session-secret-with-at-least-32-bytes"
ENCRYPTION_KEY = "0123456789abcdef" * 4


def sign_init_data(
    fields: Dict[str, str],
    bot_token: str = BOT_TOKEN,
) -> str:
    """Return a query string carrying ``fields`` and the matching Telegram hash."""

    digest = compute_init_data_hash(build_data_check_string(fields), bot_token)
    return urlencode({**fields, "hash": digest})


def telegram_fields(
    user_id: int = 42,
    first_name: str = "Ann",
    *,
    last_name: Optional[str] = None,
    auth_date: Optional[int] = None,
    language_code: Optional[str] = None,
) -> Dict[str, str]:
    user: Dict[str, object] = {"id": user_id, "first_name": first_name, "username": "ann"}
    if last_name:
        user["last_name"] = last_name
    if language_code:
        user["language_code"] = language_code
    return {
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
        "query_id": "AAH-test",
        "user": json.dumps(user, separators=(",", ":")),
    }


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        session_secret=SESSION_SECRET,
        bot_token=BOT_TOKEN,
        database_path=tmp_path / "tubedesk.sqlite3",
        encryption_key=ENCRYPTION_KEY,
        owner_external_id="1",
        secure_cookies=True,
    )


@pytest.fixture()
def database(config: AppConfig) -> Database:
    db = Database(
        config.database_path,
        encryption_key=config.encryption_key,
        owner_external_id=config.owner_external_id,
    )
    db.initialize()
    return db


@pytest.fixture()
def signed_init_data() -> Callable[..., str]:
    def factory(**kwargs: object) -> str:
        return sign_init_data(telegram_fields(**kwargs))  # type: ignore[arg-type]

    return factory
