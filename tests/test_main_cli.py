import pytest

import main
from main import _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.host is None
    assert args.port is None


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "9090"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 9090


def test_init_db_subcommand_creates_schema(tmp_path, monkeypatch, capsys) -> None:
    db_path = tmp_path / "cli.sqlite3"
    monkeypatch.setenv("JWT_SECRET", "cli-test-secret")
    monkeypatch.setenv("ACCOUNTS_DB_PATH", str(db_path))
    monkeypatch.setattr(main, "load_dotenv", lambda: False)

    main.main(["init-db"])

    assert db_path.exists()
    assert "Database initialisation complete." in capsys.readouterr().out


def test_missing_secret_stops_startup(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.setenv("ACCOUNTS_DB_PATH", str(tmp_path / "cli.sqlite3"))
    monkeypatch.setattr(main, "load_dotenv", lambda: False)

    with pytest.raises(SystemExit):
        main.main(["serve"])


def test_serve_passes_configured_port_to_uvicorn(tmp_path, monkeypatch) -> None:
    import uvicorn

    captured = {}

    def fake_run(app, **kwargs):
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setenv("JWT_SECRET", "cli-test-secret")
    monkeypatch.setenv("ACCOUNTS_DB_PATH", str(tmp_path / "cli.sqlite3"))
    monkeypatch.setenv("PORT", "8181")
    monkeypatch.setattr(main, "load_dotenv", lambda: False)
    monkeypatch.setattr(uvicorn, "run", fake_run)

    main.main([])

    assert captured["port"] == 8181
    assert captured["host"] == "0.0.0.0"
    assert captured["app"].state.database.path == (tmp_path / "cli.sqlite3").resolve()
