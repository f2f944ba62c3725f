import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import main
from main import _parse_args
from userdesk.store import DocumentStore
from userdesk.users import UserDraft, UserService


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8081"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8081


def test_config_option_may_precede_subcommand() -> None:
    args = _parse_args(["--config", "custom.yaml", "admin"])
    assert args.command == "admin"
    assert args.config == "custom.yaml"


def test_create_account_subcommand() -> None:
    args = _parse_args(["create-account", "ada@example.com"])
    assert args.command == "create-account"
    assert args.email == "ada@example.com"


def _service(tmp_path: Path) -> UserService:
    store = DocumentStore(tmp_path / "cli.sqlite3")
    store.initialize()
    return UserService(store)


def _feed(monkeypatch: pytest.MonkeyPatch, *answers: str) -> None:
    replies = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(replies))


def test_admin_console_adds_and_lists_users(tmp_path, monkeypatch, capsys) -> None:
    service = _service(tmp_path)
    _feed(monkeypatch, "2", "Ada", "ada@x.com", "1", "4")

    main._run_admin_cli(service)

    output = capsys.readouterr().out
    assert "Created user" in output
    assert "1 user(s) found:" in output
    assert "ada@x.com" in output
    assert "Goodbye!" in output


def test_admin_console_reports_validation_errors(tmp_path, monkeypatch, capsys) -> None:
    service = _service(tmp_path)
    _feed(monkeypatch, "2", "Ada", "", "4")

    main._run_admin_cli(service)

    assert "Failed to create user: Name and email are required" in capsys.readouterr().out
    assert service.list_users() == []


def test_admin_console_deletes_after_confirmation(tmp_path, monkeypatch, capsys) -> None:
    service = _service(tmp_path)
    user = service.create_user(UserDraft(name="Ada", email="ada@x.com"))
    _feed(monkeypatch, "3", user.id, "n", "3", user.id, "y", "4")

    main._run_admin_cli(service)

    output = capsys.readouterr().out
    assert "Deletion cancelled." in output
    assert f"Deleted user {user.id}." in output
    assert service.list_users() == []


def test_create_account_command(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("USERDESK_CONFIG", raising=False)
    monkeypatch.setenv("USERDESK_DB_PATH", str(tmp_path / "accounts.sqlite3"))
    monkeypatch.setattr(main, "getpass", lambda prompt="": "secret-pass")

    assert main.main(["create-account", "ada@example.com"]) == 0
    assert "Created account" in capsys.readouterr().out

    assert main.main(["create-account", "ADA@example.com"]) == 1
    assert "already exists" in capsys.readouterr().err


def test_init_db_creates_tables(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("USERDESK_CONFIG", raising=False)
    db_path = tmp_path / "fresh.sqlite3"
    monkeypatch.setenv("USERDESK_DB_PATH", str(db_path))

    assert main.main(["init-db"]) == 0
    assert db_path.exists()
    assert DocumentStore(db_path).collection("users").list() == []


def test_delete_account_command(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("USERDESK_CONFIG", raising=False)
    monkeypatch.setenv("USERDESK_DB_PATH", str(tmp_path / "accounts.sqlite3"))
    monkeypatch.setattr(main, "getpass", lambda prompt="": "secret-pass")
    main.main(["create-account", "ada@example.com"])
    capsys.readouterr()

    assert main.main(["delete-account", "Ada@Example.com"]) == 0
    assert "Deleted account <ada@example.com>" in capsys.readouterr().out

    assert main.main(["delete-account", "ada@example.com"]) == 1
    assert "No account registered" in capsys.readouterr().err
