from pathlib import Path

import pytest

from newsdesk.config import load_settings

CREDENTIALS = {
    "TELEGRAM_BOT_TOKEN": "123:abc",
    "TELEGRAM_CHAT_ID": "-100200",
    "GOOGLE_API_KEY": "key",
}


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "ADMIN_CHAT_ID",
        "SOURCES",
        "POLL_MIN_INTERVAL_SEC",
        "RETRY_FAILED_ARTICLES",
        "SEEN_STORE_BACKEND",
        "SEEN_STORE_DIR",
        "MAX_ARTICLE_ATTEMPTS",
        *CREDENTIALS,
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    for k, v in CREDENTIALS.items():
        clean_env.setenv(k, v)
    settings = load_settings()
    assert settings.admin_chat_id == "-100200"
    assert settings.sources == ["propublica", "consortiumnews", "truthout"]
    assert (settings.poll_min_interval, settings.poll_max_interval) == (180.0, 900.0)
    assert settings.retry_failed_articles is True
    assert settings.seen_store_backend == "file"


def test_overrides(clean_env):
    for k, v in CREDENTIALS.items():
        clean_env.setenv(k, v)
    clean_env.setenv("ADMIN_CHAT_ID", "555")
    clean_env.setenv("SOURCES", "Truthout, propublica")
    clean_env.setenv("POLL_MIN_INTERVAL_SEC", "240")
    clean_env.setenv("RETRY_FAILED_ARTICLES", "no")
    clean_env.setenv("SEEN_STORE_DIR", "/var/lib/newsdesk")
    clean_env.setenv("MAX_ARTICLE_ATTEMPTS", "not-a-number")

    settings = load_settings()

    assert settings.admin_chat_id == "555"
    assert settings.sources == ["truthout", "propublica"]
    assert settings.poll_min_interval == 240.0
    assert settings.retry_failed_articles is False
    assert settings.seen_store_dir == Path("/var/lib/newsdesk")
    assert settings.max_article_attempts == 3


def test_missing_credentials(clean_env):
    with pytest.raises(RuntimeError) as exc:
        load_settings()
    assert "TELEGRAM_CHAT_ID" in str(exc.value)


def test_credentials_optional_for_dry_runs(clean_env):
    settings = load_settings(require_credentials=False)
    assert settings.telegram_bot_token == ""
