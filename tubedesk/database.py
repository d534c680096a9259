"""SQLite-backed persistence for users, YouTube API keys and preferences."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from .encryption import ApiKeyCipher, build_api_key_cipher
from .errors import StorageUnavailable
from .models import ApiKeyRecord, Language, LanguagePreference, User

logger = logging.getLogger("tubedesk.database")

_LANGUAGES = ("ru", "en")
_ROLES = ("user", "admin")


class _Unset:
    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "UNSET"


UNSET = _Unset()


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


class Database:
    """Simple wrapper around SQLite for persisting users and their API keys."""

    def __init__(
        self,
        path: Path,
        *,
        encryption_key: Optional[str] = None,
        owner_external_id: Optional[str] = None,
    ) -> None:
        _ensure_directory(path)
        self._path = path
        self._owner_external_id = owner_external_id
        self._api_key_cipher: Optional[ApiKeyCipher] = build_api_key_cipher(encryption_key)

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _storage(self, action: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._connect() as conn:
                yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.DatabaseError as exc:
            raise StorageUnavailable(f"Database unavailable while trying to {action}") from exc

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._storage("initialise the schema") as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    external_id TEXT NOT NULL UNIQUE,
                    name TEXT,
                    email TEXT,
                    login_method TEXT,
                    role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin')),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_signed_in TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS youtube_api_keys (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id),
                    encrypted_key TEXT NOT NULL,
                    iv TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    last_validated TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS user_preferences (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL UNIQUE REFERENCES users(id),
                    language TEXT NOT NULL DEFAULT 'en' CHECK (language IN ('ru', 'en')),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_youtube_api_keys_user_id ON youtube_api_keys(user_id);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def upsert_user(
        self,
        external_id: str,
        *,
        name: object = UNSET,
        email: object = UNSET,
        login_method: object = UNSET,
        role: Optional[str] = None,
        last_signed_in: Optional[datetime] = None,
    ) -> None:
        """Insert the user or update the supplied fields of an existing row.

        Fields left as ``UNSET`` keep their stored value. When nothing else
        changes, ``last_signed_in`` is refreshed.
        """

        if not external_id:
            raise ValueError("User external_id is required for upsert")
        if role is not None and role not in _ROLES:
            raise ValueError(f"Unknown role '{role}'")

        now = _current_timestamp()
        values = {"name": None, "email": None, "login_method": None}
        updates: dict[str, object] = {}
        for column, value in (("name", name), ("email", email), ("login_method", login_method)):
            if value is UNSET:
                continue
            values[column] = value
            updates[column] = value

        signed_in = last_signed_in or now
        # Checked before the role is applied, so a role-only update still refreshes.
        if last_signed_in is not None or not updates:
            updates["last_signed_in"] = _serialize_datetime(signed_in)

        if role is None and self._owner_external_id and external_id == self._owner_external_id:
            role = "admin"
        if role is not None:
            updates["role"] = role
        updates["updated_at"] = _serialize_datetime(now)

        assignments = ", ".join(f"{column} = excluded.{column}" for column in updates)
        with self._storage("upsert a user") as conn:
            conn.execute(
                f"""
                INSERT INTO users (
                    external_id, name, email, login_method, role, created_at, updated_at, last_signed_in
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(external_id) DO UPDATE SET {assignments}
                """,
                (
                    external_id,
                    values["name"],
                    values["email"],
                    values["login_method"],
                    role or "user",
                    _serialize_datetime(now),
                    _serialize_datetime(now),
                    _serialize_datetime(signed_in),
                ),
            )

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        try:
            with self._storage("load a user") as conn:
                row = conn.execute(
                    "SELECT * FROM users WHERE external_id = ?",
                    (external_id,),
                ).fetchone()
        except StorageUnavailable:
            logger.warning("Cannot load user %s: database not available", external_id)
            return None
        if row is None:
            return None
        return self._row_to_user(row)

    def count_users(self) -> int:
        with self._storage("count users") as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM users").fetchone()
        return int(row["total"])

    # ------------------------------------------------------------------
    # YouTube API key management
    # ------------------------------------------------------------------
    def save_api_key(self, user_id: int, api_key: str) -> ApiKeyRecord:
        """Deactivate the user's existing keys and store ``api_key`` as the active one."""

        cleaned = api_key.strip()
        if not cleaned:
            raise ValueError("API key must not be empty")

        encrypted, iv = self._encrypt_api_key(cleaned)
        now = _serialize_datetime(_current_timestamp())

        with self._storage("save an API key") as conn:
            conn.execute(
                "UPDATE youtube_api_keys SET is_active = 0, updated_at = ? WHERE user_id = ? AND is_active = 1",
                (now, user_id),
            )
            cursor = conn.execute(
                """
                INSERT INTO youtube_api_keys (
                    user_id, encrypted_key, iv, is_active, last_validated, created_at, updated_at
                ) VALUES (?, ?, ?, 1, ?, ?, ?)
                """,
                (user_id, encrypted, iv, now, now, now),
            )
            key_id = cursor.lastrowid
            row = conn.execute("SELECT * FROM youtube_api_keys WHERE id = ?", (key_id,)).fetchone()

        return self._row_to_api_key(row)

    def get_active_api_key(self, user_id: int) -> Optional[str]:
        """Return the decrypted active API key for the given user, if available."""

        try:
            with self._storage("load an API key") as conn:
                row = conn.execute(
                    """
                    SELECT encrypted_key, iv FROM youtube_api_keys
                     WHERE user_id = ? AND is_active = 1
                     ORDER BY id DESC LIMIT 1
                    """,
                    (user_id,),
                ).fetchone()
        except StorageUnavailable:
            logger.warning("Cannot load API key for user %s: database not available", user_id)
            return None

        if row is None:
            return None

        return self._decrypt_api_key(str(row["encrypted_key"]), str(row["iv"]))

    def has_active_api_key(self, user_id: int) -> bool:
        try:
            with self._storage("check for an API key") as conn:
                row = conn.execute(
                    "SELECT id FROM youtube_api_keys WHERE user_id = ? AND is_active = 1 LIMIT 1",
                    (user_id,),
                ).fetchone()
        except StorageUnavailable:
            logger.warning("Cannot check API key for user %s: database not available", user_id)
            return False
        return row is not None

    def deactivate_api_keys(self, user_id: int) -> int:
        """Flag every key of the user inactive. Records are kept, not deleted."""

        now = _serialize_datetime(_current_timestamp())
        with self._storage("deactivate API keys") as conn:
            cursor = conn.execute(
                "UPDATE youtube_api_keys SET is_active = 0, updated_at = ? WHERE user_id = ? AND is_active = 1",
                (now, user_id),
            )
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------
    def get_language_preference(self, user_id: int) -> Optional[LanguagePreference]:
        try:
            with self._storage("load preferences") as conn:
                row = conn.execute(
                    "SELECT user_id, language FROM user_preferences WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
        except StorageUnavailable:
            logger.warning("Cannot load preferences for user %s: database not available", user_id)
            return None
        if row is None:
            return None
        return LanguagePreference(user_id=int(row["user_id"]), language=row["language"])

    def set_language(self, user_id: int, language: Language) -> LanguagePreference:
        if language not in _LANGUAGES:
            raise ValueError(f"Unsupported language '{language}'")

        now = _serialize_datetime(_current_timestamp())
        with self._storage("save preferences") as conn:
            conn.execute(
                """
                INSERT INTO user_preferences (user_id, language, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET language = excluded.language, updated_at = excluded.updated_at
                """,
                (user_id, language, now, now),
            )
        return LanguagePreference(user_id=user_id, language=language)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            external_id=str(row["external_id"]),
            name=row["name"],
            email=row["email"],
            login_method=row["login_method"],
            role=row["role"],
            last_signed_in=_parse_datetime(str(row["last_signed_in"])),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )

    def _row_to_api_key(self, row: sqlite3.Row) -> ApiKeyRecord:
        last_validated = row["last_validated"]
        return ApiKeyRecord(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            encrypted_key=str(row["encrypted_key"]),
            iv=str(row["iv"]),
            is_active=bool(row["is_active"]),
            last_validated=_parse_datetime(str(last_validated)) if last_validated else None,
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )

    def _encrypt_api_key(self, api_key: str) -> tuple[str, str]:
        if self._api_key_cipher is None:
            return api_key, ""
        return self._api_key_cipher.encrypt(api_key)

    def _decrypt_api_key(self, encrypted: str, iv: str) -> str:
        if not iv:
            return encrypted
        if self._api_key_cipher is None:
            raise RuntimeError(
                "API key encryption secret is not configured. Set YOUTUBE_API_ENCRYPTION_KEY to read stored keys."
            )
        return self._api_key_cipher.decrypt(encrypted, iv)


__all__ = ["Database", "UNSET"]
