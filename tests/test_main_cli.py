"""Tests for main.py -- the serve / create-user command line.

Covers:
- create-user inserts a hashed-password record and prints its id
- create-user with a taken email or an over-long password exits 1
- bad configuration exits 1 before uvicorn starts
- no subcommand prints help
"""

from unittest.mock import patch

import pytest

from auth.passwords import verify_password
from auth.store import UserStore
from core.config import get_settings
from main import main


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


_ARGS = ["create-user", "--name", "Ada", "--age", "36", "--email", "ada@example.com", "--password", "s3cret"]


def test_create_user(cli_db, capsys):
    assert main(_ARGS) == 0
    uid = capsys.readouterr().out.strip()
    store = UserStore(cli_db)
    try:
        user = store.get_by_id(uid)
        assert (user.name, user.age, user.email) == ("Ada", 36, "ada@example.com")
        assert verify_password("s3cret", user.hashed_password)
    finally:
        store.close()


def test_create_user_duplicate_email(cli_db):
    assert main(_ARGS) == 0
    assert main(_ARGS) == 1


def test_serve_with_bad_config_exits(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "too-short")
    get_settings.cache_clear()
    try:
        with patch("uvicorn.run") as run:
            assert main(["serve"]) == 1
        run.assert_not_called()
    finally:
        get_settings.cache_clear()


def test_serve_uses_configured_port(monkeypatch):
    monkeypatch.setenv("PORT", "8123")
    get_settings.cache_clear()
    try:
        with patch("uvicorn.run") as run:
            assert main(["serve"]) == 0
        assert run.call_args.kwargs["port"] == 8123
        assert run.call_args.args[0] == "api.main:app"
    finally:
        get_settings.cache_clear()


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage:" in capsys.readouterr().out


def test_create_user_password_too_long(cli_db):
    args = _ARGS[:-1] + ["p" * 73]
    assert main(args) == 1
    store = UserStore(cli_db)
    try:
        assert store.get_by_email("ada@example.com") is None
    finally:
        store.close()
