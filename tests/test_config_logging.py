import logging

import pytest

from config import Settings, load_settings
from logging_config import CHATTY_LOGGERS, setup_logging


def test_load_settings(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///givehaven.db")
    monkeypatch.setenv("ADMIN_EMAILS", " Admin@Example.org, ops@example.org ,")
    monkeypatch.setenv("SQL_ECHO", "yes")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = load_settings()
    assert s.database_url == "sqlite:///givehaven.db"
    assert s.admin_emails == ("admin@example.org", "ops@example.org")
    assert s.sql_echo is True
    assert s.log_level == "DEBUG"
    assert s.unread_poll_seconds == 30

    # blank secret falls back to a generated one
    monkeypatch.setenv("SECRET_KEY", "  ")
    s2 = load_settings()
    assert len(s2.secret_key) == 64


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    s = load_settings()
    assert s.database_url == Settings.database_url
    assert s.session_max_age == 8 * 60 * 60
    assert s.signed_url_ttl == 3600


def test_setup_logging_idempotent():
    logger1 = setup_logging(logging.DEBUG)
    logger2 = setup_logging(logging.DEBUG)
    assert logger1 is logger2
    assert logger1.name == "givehaven"
    assert logger1.handlers  # at least one handler installed


@pytest.mark.parametrize("level, expected", [("INFO", logging.WARNING), ("DEBUG", logging.NOTSET)])
def test_setup_logging_quiets_chatty_libraries(monkeypatch, level, expected):
    monkeypatch.setattr(logging.getLogger("givehaven"), "handlers", [])
    monkeypatch.setattr(logging.getLogger("givehaven"), "level", logging.NOTSET)
    for name in CHATTY_LOGGERS:
        monkeypatch.setattr(logging.getLogger(name), "level", logging.NOTSET)

    setup_logging(level)
    assert [logging.getLogger(name).level for name in CHATTY_LOGGERS] == [expected] * len(CHATTY_LOGGERS)
