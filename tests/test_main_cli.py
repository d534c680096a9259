from pathlib import Path

import pytest

import main
from main import _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.port == 3000


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_config_option_precedes_subcommand() -> None:
    args = _parse_args(["--config", "tubedesk.yaml", "init-db"])
    assert args.command == "init-db"
    assert args.config == "tubedesk.yaml"

    args = _parse_args(["--config", "tubedesk.yaml"])
    assert args.command == "serve"
    assert args.config == "tubedesk.yaml"


def test_init_db_creates_database(tmp_path: Path, capsys) -> None:
    config_path = tmp_path / "tubedesk.yaml"
    config_path.write_text(
        "session_secret: cli-tests-secret-with-at-least-32-bytes\ndatabase_path: db/tubedesk.sqlite3\n",
        encoding="utf-8",
    )

    main.main(["--config", str(config_path), "init-db"])

    assert (tmp_path / "db" / "tubedesk.sqlite3").exists()
    output = capsys.readouterr().out
    assert "Database initialisation complete." in output
    assert "0 user(s) registered." in output


def test_invalid_config_exits(tmp_path: Path) -> None:
    config_path = tmp_path / "tubedesk.yaml"
    config_path.write_text("bot_token: 123:abc\n", encoding="utf-8")

    with pytest.raises(SystemExit):
        main.main(["--config", str(config_path), "init-db"])


@pytest.mark.parametrize(
    "contents",
    [
        "session_secret: [unterminated\n",
        "session_secret: cli-tests-secret-with-at-least-32-bytes\nsession_ttl_seconds: forever\n",
        "session_secret: cli-tests-secret-with-at-least-32-bytes\nyoutube_timeout: slow\n",
    ],
)
def test_malformed_config_reports_invalid_configuration(tmp_path: Path, contents: str) -> None:
    config_path = tmp_path / "tubedesk.yaml"
    config_path.write_text(contents, encoding="utf-8")

    with pytest.raises(SystemExit, match="Invalid configuration"):
        main.main(["--config", str(config_path), "init-db"])


def test_serve_runs_uvicorn_with_application(monkeypatch, tmp_path: Path) -> None:
    import uvicorn

    config_path = tmp_path / "tubedesk.yaml"
    config_path.write_text(
        "session_secret: cli-tests-secret-with-at-least-32-bytes\ndatabase_path: tubedesk.sqlite3\n",
        encoding="utf-8",
    )
    calls = {}

    def fake_run(app, **kwargs):
        calls["app"] = app
        calls.update(kwargs)

    monkeypatch.setattr(uvicorn, "run", fake_run)

    main.main(["--config", str(config_path), "serve", "--port", "8123"])

    assert calls["port"] == 8123
    assert calls["host"] == "0.0.0.0"
    assert calls["app"].state.database.path == (tmp_path / "tubedesk.sqlite3").resolve()
