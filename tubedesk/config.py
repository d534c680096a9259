"""Configuration management for the tubedesk service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
DEFAULT_APP_ID = "telegram-miniapp"
DEFAULT_SESSION_COOKIE = "tubedesk_session"
ONE_YEAR = timedelta(days=365)


class ConfigError(ValueError):
    """Raised when the service configuration is incomplete or malformed."""


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _int_field(data: Mapping[str, object], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _float_field(data: Mapping[str, object], key: str, default: float) -> float:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc


def _bool_field(data: Mapping[str, object], key: str, default: bool) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


def resolve_database_path(value: Optional[str], base_path: Path | None = None) -> Path:
    """Resolve the on-disk path for the application database."""

    if value:
        raw = Path(value).expanduser()
        if raw.is_absolute() or base_path is None:
            return raw.resolve(strict=False)
        return (base_path / raw).resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "tubedesk.sqlite3").resolve(strict=False)


@dataclass(frozen=True)
class AppConfig:
    """Process-wide settings, built once and handed to each component."""

    session_secret: str
    bot_token: str = ""
    app_id: str = DEFAULT_APP_ID
    database_path: Path = field(default_factory=lambda: resolve_database_path(None))
    encryption_key: Optional[str] = None
    owner_external_id: Optional[str] = None
    cookie_domain: Optional[str] = None
    session_cookie_name: str = DEFAULT_SESSION_COOKIE
    is_production: bool = False
    secure_cookies: bool = True
    session_ttl: timedelta = ONE_YEAR
    youtube_base_url: str = YOUTUBE_API_BASE
    youtube_timeout: float = 10.0
    init_data_max_age: Optional[int] = None

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "AppConfig":
        """Create an :class:`AppConfig` from raw dictionary data."""

        secret = _optional_str(data.get("session_secret"))
        if not secret:
            raise ConfigError("Missing required configuration field: session_secret")

        ttl_seconds = _int_field(data, "session_ttl_seconds")
        session_ttl = timedelta(seconds=ttl_seconds) if ttl_seconds is not None else ONE_YEAR

        return AppConfig(
            session_secret=secret,
            bot_token=_optional_str(data.get("bot_token")) or "",
            app_id=_optional_str(data.get("app_id")) or DEFAULT_APP_ID,
            database_path=resolve_database_path(_optional_str(data.get("database_path")), base_path),
            encryption_key=_optional_str(data.get("encryption_key")),
            owner_external_id=_optional_str(data.get("owner_external_id")),
            cookie_domain=_optional_str(data.get("cookie_domain")),
            session_cookie_name=_optional_str(data.get("session_cookie_name")) or DEFAULT_SESSION_COOKIE,
            is_production=_bool_field(data, "is_production", False),
            secure_cookies=_bool_field(data, "secure_cookies", True),
            session_ttl=session_ttl,
            youtube_base_url=(_optional_str(data.get("youtube_base_url")) or YOUTUBE_API_BASE).rstrip("/"),
            youtube_timeout=_float_field(data, "youtube_timeout", 10.0),
            init_data_max_age=_int_field(data, "init_data_max_age"),
        )

    @staticmethod
    def from_env(
        environ: Mapping[str, str] | None = None,
        *,
        defaults: Mapping[str, object] | None = None,
        base_path: Path | None = None,
    ) -> "AppConfig":
        """Build the configuration from environment variables over ``defaults``."""

        env = os.environ if environ is None else environ
        merged: Dict[str, object] = dict(defaults or {})
        mapping = {
            "BOT_TOKEN": "bot_token",
            "JWT_SECRET": "session_secret",
            "APP_ID": "app_id",
            "DATABASE_PATH": "database_path",
            "YOUTUBE_API_ENCRYPTION_KEY": "encryption_key",
            "OWNER_OPEN_ID": "owner_external_id",
            "COOKIE_DOMAIN": "cookie_domain",
        }
        for env_name, key in mapping.items():
            value = env.get(env_name)
            if value:
                merged[key] = value

        if "TUBEDESK_ENV" in env:
            merged["is_production"] = env["TUBEDESK_ENV"].strip().lower() == "production"
        elif "NODE_ENV" in env:
            merged["is_production"] = env["NODE_ENV"].strip().lower() == "production"
        if "TUBEDESK_SECURE_COOKIES" in env:
            merged["secure_cookies"] = _env_flag(env.get("TUBEDESK_SECURE_COOKIES"), True)

        return AppConfig.from_dict(merged, base_path=base_path)

    def with_overrides(self, **changes: object) -> "AppConfig":
        return replace(self, **changes)


def load_config(config_path: Path, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load settings from a YAML file; environment variables take precedence."""

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Could not parse {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must contain a mapping at the top level")

    return AppConfig.from_env(environ, defaults=raw, base_path=config_path.parent)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "tubedesk.yaml").resolve(strict=False)
    return candidate


def load_app_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load the YAML file named by ``TUBEDESK_CONFIG`` if present, else the environment alone."""

    env = os.environ if environ is None else environ
    path = resolve_config_path(env.get("TUBEDESK_CONFIG"))
    if path.is_file():
        return load_config(path, env)
    return AppConfig.from_env(env)


__all__ = [
    "AppConfig",
    "ConfigError",
    "DEFAULT_APP_ID",
    "DEFAULT_SESSION_COOKIE",
    "ONE_YEAR",
    "YOUTUBE_API_BASE",
    "load_app_config",
    "load_config",
    "resolve_config_path",
    "resolve_database_path",
]
