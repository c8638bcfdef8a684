import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SOURCES = ["propublica", "consortiumnews", "truthout"]


def env(name: str, default: str | None = None, required: bool = False) -> str:
    v = os.getenv(name, default)
    if required and not v:
        raise RuntimeError(f"missing env {name}")
    return (v or "").strip()


def get_int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def get_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default or [])
    return [s.strip().lower() for s in raw.split(",") if s.strip()]


@dataclass
class Settings:
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    admin_chat_id: str = ""
    google_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    sources: list[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))

    poll_min_interval: float = 180.0
    poll_max_interval: float = 900.0
    poll_initial_interval: float = 900.0

    fetch_timeout: float = 45.0
    fetch_max_retries: int = 3
    fetch_backoff_base: float = 2.0
    fetch_long_retry: float = 600.0
    fetch_jitter: float = 0.1

    summary_retry_delay: float = 30.0
    summary_max_chars: int = 12000

    seen_store_backend: str = "file"
    seen_store_dir: Path = Path("state")
    seen_store_limit: int = 100
    database_url: str = ""

    log_dir: Path = Path("logs")
    retry_failed_articles: bool = True
    max_article_attempts: int = 3
    seed_on_startup: bool = True
    control_bot_enabled: bool = True
    min_paragraph_chars: int = 10
    truthout_max_age_hours: int = 24
    lock_file: str = "/tmp/newsdesk_run_sources.lock"


def load_settings(require_credentials: bool = True) -> Settings:
    chat_id = env("TELEGRAM_CHAT_ID", required=require_credentials)
    return Settings(
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", required=require_credentials),
        telegram_chat_id=chat_id,
        admin_chat_id=env("ADMIN_CHAT_ID") or chat_id,
        google_api_key=env("GOOGLE_API_KEY", required=require_credentials),
        gemini_model=env("GEMINI_MODEL", "gemini-2.0-flash"),
        sources=get_list("SOURCES", DEFAULT_SOURCES),
        poll_min_interval=get_float("POLL_MIN_INTERVAL_SEC", 180.0),
        poll_max_interval=get_float("POLL_MAX_INTERVAL_SEC", 900.0),
        poll_initial_interval=get_float("POLL_INITIAL_INTERVAL_SEC", 900.0),
        fetch_timeout=get_float("FETCH_TIMEOUT_SEC", 45.0),
        fetch_max_retries=get_int("FETCH_MAX_RETRIES", 3),
        fetch_backoff_base=get_float("FETCH_BACKOFF_BASE_SEC", 2.0),
        fetch_long_retry=get_float("FETCH_LONG_RETRY_SEC", 600.0),
        fetch_jitter=get_float("FETCH_JITTER", 0.1),
        summary_retry_delay=get_float("SUMMARY_RETRY_DELAY_SEC", 30.0),
        summary_max_chars=get_int("SUMMARY_MAX_CHARS", 12000),
        seen_store_backend=env("SEEN_STORE_BACKEND", "file").lower(),
        seen_store_dir=Path(env("SEEN_STORE_DIR", "state")),
        seen_store_limit=get_int("SEEN_STORE_LIMIT", 100) or 100,
        database_url=env("DATABASE_URL"),
        log_dir=Path(env("LOG_DIR", "logs")),
        retry_failed_articles=get_bool("RETRY_FAILED_ARTICLES", True),
        max_article_attempts=get_int("MAX_ARTICLE_ATTEMPTS", 3) or 3,
        seed_on_startup=get_bool("SEED_ON_STARTUP", True),
        control_bot_enabled=get_bool("CONTROL_BOT_ENABLED", True),
        min_paragraph_chars=get_int("MIN_PARAGRAPH_CHARS", 10),
        truthout_max_age_hours=get_int("TRUTHOUT_MAX_AGE_HOURS", 24),
        lock_file=env("LOCK_FILE", "/tmp/newsdesk_run_sources.lock"),
    )
