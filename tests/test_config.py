from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from tubedesk.config import (
    DEFAULT_APP_ID,
    DEFAULT_SESSION_COOKIE,
    ONE_YEAR,
    YOUTUBE_API_BASE,
    AppConfig,
    ConfigError,
    load_app_config,
    load_config,
    resolve_config_path,
)

SECRET = "config-tests-secret-with-at-least-32-bytes"


def test_defaults_from_minimal_mapping() -> None:
    config = AppConfig.from_dict({"session_secret": SECRET})

    assert config.app_id == DEFAULT_APP_ID
    assert config.session_cookie_name == DEFAULT_SESSION_COOKIE
    assert config.session_ttl == ONE_YEAR
    assert config.youtube_base_url == YOUTUBE_API_BASE
    assert config.encryption_key is None
    assert config.secure_cookies is True
    assert config.is_production is False
    assert config.init_data_max_age is None
    assert config.database_path.name == "tubedesk.sqlite3"


def test_missing_session_secret_is_an_error() -> None:
    with pytest.raises(ConfigError):
        AppConfig.from_dict({"bot_token": "123:abc"})


def test_environment_variables_are_mapped() -> None:
    config = AppConfig.from_env(
        {
            "JWT_SECRET": SECRET,
            "BOT_TOKEN": "123:abc",
            "APP_ID": "custom-app",
            "YOUTUBE_API_ENCRYPTION_KEY": "k" * 10,
            "OWNER_OPEN_ID": "1",
            "COOKIE_DOMAIN": ".example.com",
            "NODE_ENV": "production",
        }
    )

    assert config.session_secret == SECRET
    assert config.bot_token == "123:abc"
    assert config.app_id == "custom-app"
    assert config.encryption_key == "k" * 10
    assert config.owner_external_id == "1"
    assert config.cookie_domain == ".example.com"
    assert config.is_production is True


def test_tubedesk_env_wins_over_node_env() -> None:
    config = AppConfig.from_env({"JWT_SECRET": SECRET, "NODE_ENV": "production", "TUBEDESK_ENV": "development"})
    assert config.is_production is False


def test_yaml_file_values_are_overridden_by_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "tubedesk.yaml"
    config_path.write_text(
        "\n".join(
            [
                f"session_secret: {SECRET}",
                "bot_token: from-file",
                "database_path: data/app.sqlite3",
                "session_ttl_seconds: 3600",
                "init_data_max_age: 600",
                "secure_cookies: false",
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(config_path, environ={"BOT_TOKEN": "from-env"})

    assert config.bot_token == "from-env"
    assert config.database_path == (tmp_path / "data" / "app.sqlite3").resolve()
    assert config.session_ttl == timedelta(hours=1)
    assert config.init_data_max_age == 600
    assert config.secure_cookies is False


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "tubedesk.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(config_path, environ={})


def test_load_app_config_uses_file_named_by_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "custom.yaml"
    config_path.write_text(f"session_secret: {SECRET}\napp_id: from-file\n", encoding="utf-8")

    config = load_app_config({"TUBEDESK_CONFIG": str(config_path)})
    assert config.app_id == "from-file"
    assert resolve_config_path(str(config_path)) == config_path.resolve()


def test_load_app_config_without_file_reads_environment(tmp_path: Path) -> None:
    config = load_app_config({"TUBEDESK_CONFIG": str(tmp_path / "missing.yaml"), "JWT_SECRET": SECRET})
    assert config.session_secret == SECRET


def test_with_overrides_returns_a_copy() -> None:
    config = AppConfig.from_dict({"session_secret": SECRET})
    changed = config.with_overrides(app_id="other")
    assert changed.app_id == "other"
    assert config.app_id == DEFAULT_APP_ID


def test_quoted_booleans_are_parsed(tmp_path: Path) -> None:
    config_path = tmp_path / "tubedesk.yaml"
    config_path.write_text(
        f'session_secret: {SECRET}\nis_production: "false"\nsecure_cookies: "no"\n',
        encoding="utf-8",
    )

    config = load_config(config_path, environ={})
    assert config.is_production is False
    assert config.secure_cookies is False
    assert AppConfig.from_dict({"session_secret": SECRET, "is_production": "true"}).is_production is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"session_ttl_seconds": "a year"},
        {"init_data_max_age": "soon"},
        {"youtube_timeout": "fast"},
        {"session_ttl_seconds": True},
        {"is_production": "maybe"},
    ],
)
def test_malformed_values_raise_config_error(overrides) -> None:
    with pytest.raises(ConfigError):
        AppConfig.from_dict({"session_secret": SECRET, **overrides})


def test_numeric_strings_are_accepted() -> None:
    config = AppConfig.from_dict(
        {"session_secret": SECRET, "session_ttl_seconds": "60", "youtube_timeout": "2.5", "init_data_max_age": "30"}
    )
    assert config.session_ttl == timedelta(minutes=1)
    assert config.youtube_timeout == 2.5
    assert config.init_data_max_age == 30


def test_unparseable_yaml_is_a_config_error(tmp_path: Path) -> None:
    config_path = tmp_path / "tubedesk.yaml"
    config_path.write_text("session_secret: [unterminated\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Could not parse"):
        load_config(config_path, environ={})
